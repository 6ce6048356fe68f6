"""
Tests for order API endpoints.

These test the HTTP layer: status codes, response format and
error mapping. The lifecycle rules themselves are tested in
tests/services/test_order_service.py.
"""

from decimal import Decimal

ACTOR = 1


def create_order(client, **overrides):
    body = {
        "client_id": 9,
        "total_usd": "100.00",
        "delivery_fee_usd": "10.00",
        "actor_id": ACTOR,
    }
    body.update(overrides)
    return client.post("/orders", json=body)


def move(client, order_id, status, driver_id=None):
    body = {"status": status, "actor_id": ACTOR}
    if driver_id is not None:
        body["driver_id"] = driver_id
    return client.patch(f"/orders/{order_id}/status", json=body)


def deliver(client, order_id, driver_id=3):
    for status in ("assigned", "picked_up", "in_transit", "delivered"):
        response = move(client, order_id, status, driver_id=driver_id)
        assert response.status_code == 200, response.json()
    return response


def cash_balance(client) -> Decimal:
    return Decimal(client.get("/cashbox").json()["cash_usd"])


class TestCreateOrder:

    def test_create_returns_201(self, client):
        response = create_order(client)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "new"
        assert data["payment_status"] == "unpaid"
        assert data["order_ref"].startswith("ORD-")
        assert data["cashbox_applied_on_create"] is True

    def test_partial_start_returns_422(self, client):
        response = create_order(client, payment_status="partial")

        assert response.status_code == 422

    def test_prepaid_without_cash_returns_409(self, client):
        response = create_order(client, payment_status="prepaid")

        assert response.status_code == 409
        assert client.get("/orders").json() == []

    def test_third_party_without_carrier_returns_404(self, client):
        response = create_order(client, deliver_method="third_party")

        assert response.status_code == 404

    def test_duplicate_order_ref_returns_409(self, client):
        create_order(client, order_ref="A-1001")

        response = create_order(client, order_ref="A-1001")

        assert response.status_code == 409
        assert "A-1001" in response.json()["detail"]
        assert len(client.get("/orders").json()) == 1


class TestReadOrders:

    def test_get_order(self, client):
        order_id = create_order(client).json()["id"]

        response = client.get(f"/orders/{order_id}")

        assert response.status_code == 200
        assert response.json()["id"] == order_id

    def test_missing_order_returns_404(self, client):
        response = client.get("/orders/999")

        assert response.status_code == 404

    def test_list_filters_by_client(self, client):
        create_order(client, client_id=1)
        create_order(client, client_id=2)

        response = client.get("/orders", params={"client_id": 2})

        assert [o["client_id"] for o in response.json()] == [2]


class TestStatus:

    def test_skipping_states_returns_409(self, client):
        order_id = create_order(client).json()["id"]

        response = move(client, order_id, "delivered")

        assert response.status_code == 409

    def test_unknown_status_returns_422(self, client):
        order_id = create_order(client).json()["id"]

        response = move(client, order_id, "lost")

        assert response.status_code == 422

    def test_delivery_collects_total(self, client):
        order_id = create_order(client, driver_fee_usd="4.00").json()["id"]

        response = deliver(client, order_id)

        assert response.json()["cashbox_applied_on_delivery"] is True
        assert cash_balance(client) == Decimal("96.00")

    def test_payment_status_paid_collects(self, client):
        order_id = create_order(client).json()["id"]

        response = client.patch(f"/orders/{order_id}/payment-status", json={
            "payment_status": "paid", "actor_id": ACTOR,
        })

        assert response.status_code == 200
        assert response.json()["cashbox_applied_on_paid"] is True
        assert cash_balance(client) == Decimal("100.00")


class TestCashOutAndHistory:

    def test_cash_out_settles_order(self, client):
        order_id = create_order(client, driver_fee_usd="4.00").json()["id"]
        deliver(client, order_id)

        response = client.post(f"/orders/{order_id}/cashout", params={"actor_id": ACTOR})

        assert response.status_code == 200
        assert response.json()["transaction"]["tx_type"] == "cash_out"
        order = client.get(f"/orders/{order_id}").json()
        assert order["status"] == "completed"
        assert order["accounting_cashed"] is True
        assert order["cashbox_history_moved"] is True
        # 100 collected, 4 advanced to the driver, 90 paid back to the client
        assert cash_balance(client) == Decimal("6.00")

    def test_second_cash_out_returns_409(self, client):
        order_id = create_order(client).json()["id"]
        deliver(client, order_id)
        client.post(f"/orders/{order_id}/cashout", params={"actor_id": ACTOR})

        response = client.post(f"/orders/{order_id}/cashout", params={"actor_id": ACTOR})

        assert response.status_code == 409

    def test_cash_out_before_delivery_returns_409(self, client):
        order_id = create_order(client).json()["id"]

        response = client.post(f"/orders/{order_id}/cashout", params={"actor_id": ACTOR})

        assert response.status_code == 409

    def test_history_repeat_reports_not_applied(self, client):
        order_id = create_order(client).json()["id"]
        move(client, order_id, "cancelled")

        response = client.post(f"/orders/{order_id}/history", params={"actor_id": ACTOR})

        assert response.status_code == 200
        data = response.json()
        assert data["trigger"] == "history"
        assert data["applied"] is False
        assert data["transaction_id"] is None

    def test_history_for_active_order_returns_409(self, client):
        order_id = create_order(client).json()["id"]

        response = client.post(f"/orders/{order_id}/history", params={"actor_id": ACTOR})

        assert response.status_code == 409
