"""
Tests for cashbox API endpoints.

These test the HTTP layer: status codes, response format and
the mapping of ledger errors to HTTP errors. Business logic is
tested in tests/services.
"""

from decimal import Decimal

ACTOR = 1


def set_capital(client, usd="1000.00", lbp=1_500_000):
    return client.post("/cashbox/capital", json={
        "amount_usd": usd,
        "amount_lbp": lbp,
        "actor_id": ACTOR,
    })


class TestCapital:

    def test_add_capital_returns_201(self, client):
        response = set_capital(client)

        assert response.status_code == 201
        data = response.json()
        assert data["transaction"]["tx_type"] == "capital"
        assert [e["entry_type"] for e in data["entries"]] == ["capital_add"]
        assert data["balances"][0]["account_type"] == "cash"
        assert Decimal(data["balances"][0]["balance_usd"]) == Decimal("1000.00")

    def test_second_add_returns_409(self, client):
        set_capital(client)

        response = set_capital(client)

        assert response.status_code == 409
        assert "already set" in response.json()["detail"]

    def test_edit_posts_difference(self, client):
        set_capital(client)

        response = client.put("/cashbox/capital", json={
            "amount_usd": "1200.00",
            "amount_lbp": 1_500_000,
            "actor_id": ACTOR,
        })

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert len(entries) == 1
        assert entries[0]["entry_type"] == "capital_edit"
        assert Decimal(entries[0]["amount_usd"]) == Decimal("200.00")

    def test_negative_capital_returns_422(self, client):
        response = set_capital(client, usd="-5.00")

        assert response.status_code == 422


class TestCashboxState:

    def test_empty_cashbox(self, client):
        response = client.get("/cashbox")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "main"
        assert Decimal(data["total_usd"]) == Decimal("0")
        assert data["capital_set_at"] is None

    def test_balances_after_operations(self, client):
        set_capital(client)
        client.post("/cashbox/income", json={
            "amount_usd": "100.00", "amount_lbp": 150_000, "actor_id": ACTOR,
        })
        client.post("/cashbox/expense", json={
            "amount_usd": "50.00",
            "amount_lbp": 75_000,
            "category": "Office & Admin",
            "subcategory": "Rent",
            "actor_id": ACTOR,
        })

        data = client.get("/cashbox").json()

        assert Decimal(data["cash_usd"]) == Decimal("1050.00")
        assert data["cash_lbp"] == 1_575_000
        assert Decimal(data["initial_capital_usd"]) == Decimal("1000.00")


class TestIncomeAndExpense:

    def test_zero_income_returns_422(self, client):
        response = client.post("/cashbox/income", json={"actor_id": ACTOR})

        assert response.status_code == 422

    def test_unknown_category_returns_400(self, client):
        set_capital(client)

        response = client.post("/cashbox/expense", json={
            "amount_usd": "10.00",
            "category": "Snacks",
            "actor_id": ACTOR,
        })

        assert response.status_code == 400

    def test_overdraft_returns_409_and_writes_nothing(self, client):
        set_capital(client, usd="10.00", lbp=0)

        response = client.post("/cashbox/expense", json={
            "amount_usd": "50.00",
            "category": "Office & Admin",
            "subcategory": "Rent",
            "actor_id": ACTOR,
        })

        assert response.status_code == 409
        assert Decimal(client.get("/cashbox").json()["cash_usd"]) == Decimal("10.00")

    def test_expense_categories(self, client):
        response = client.get("/cashbox/expense-categories")

        assert response.status_code == 200
        categories = {c["category"]: c["subcategories"] for c in response.json()}
        assert "Rent" in categories["Office & Admin"]


class TestTransfer:

    def test_transfer_keeps_total(self, client):
        set_capital(client)

        response = client.post("/cashbox/transfer", json={
            "amount_usd": "300.00",
            "from_account": "cash",
            "to_account": "wish",
            "actor_id": ACTOR,
        })

        assert response.status_code == 201
        data = client.get("/cashbox").json()
        assert Decimal(data["cash_usd"]) == Decimal("700.00")
        assert Decimal(data["wish_usd"]) == Decimal("300.00")
        assert Decimal(data["total_usd"]) == Decimal("1000.00")

    def test_same_account_returns_400(self, client):
        set_capital(client)

        response = client.post("/cashbox/transfer", json={
            "amount_usd": "1.00",
            "from_account": "cash",
            "to_account": "cash",
            "actor_id": ACTOR,
        })

        assert response.status_code == 400

    def test_counterparty_account_returns_404(self, client):
        set_capital(client)

        response = client.post("/cashbox/transfer", json={
            "amount_usd": "1.00",
            "from_account": "cash",
            "to_account": "driver",
            "actor_id": ACTOR,
        })

        assert response.status_code == 404


class TestTimelineAndReport:

    def test_timeline_newest_first(self, client):
        set_capital(client)
        client.post("/cashbox/income", json={"amount_usd": "5.00", "actor_id": ACTOR})

        response = client.get("/cashbox/timeline")

        assert response.status_code == 200
        assert [e["entry_type"] for e in response.json()] == ["income", "capital_add"]

    def test_timeline_accepts_utc_offsets(self, client):
        set_capital(client)

        since_2020 = client.get(
            "/cashbox/timeline", params={"start": "2020-01-01T00:00:00Z"}
        )
        before_2020 = client.get(
            "/cashbox/timeline", params={"end": "2020-01-01T00:00:00+02:00"}
        )

        assert since_2020.status_code == 200
        assert [e["entry_type"] for e in since_2020.json()] == ["capital_add"]
        assert before_2020.status_code == 200
        assert before_2020.json() == []

    def test_report_accepts_utc_offsets(self, client):
        set_capital(client)

        response = client.get(
            "/cashbox/report", params={"start": "2020-01-01T00:00:00Z"}
        )

        assert response.status_code == 200
        assert [row["key"] for row in response.json()["entry_type"]] == ["capital_add"]

    def test_report_breakdowns(self, client):
        set_capital(client)
        client.post("/cashbox/expense", json={
            "amount_usd": "20.00",
            "category": "Operations / Fleet",
            "subcategory": "Fuel Expense",
            "actor_id": ACTOR,
        })

        data = client.get("/cashbox/report").json()

        categories = {row["key"]: row for row in data["category"]}
        assert Decimal(categories["Operations / Fleet"]["out_usd"]) == Decimal("20.00")
        assert categories[None]["entry_count"] == 1
        assert {row["key"] for row in data["entry_type"]} == {"capital_add", "expense"}
