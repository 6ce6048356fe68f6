"""
Tests for the LedgerEngine.

Tests cover:
- Capital add and edit
- Income and expense, including the no-negative-cash policy
- Transfers: conservation, same-account and atomicity
- Client payments, driver movements and third-party payables
- Order lifecycle effects and their idempotence
- Reversal of cancelled and returned orders
- Lock order and postings against closed orders
- Cash-out of a delivered order
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from delivery_ledger.exceptions import (
    AlreadyCashedOut,
    CapitalAlreadySet,
    InsufficientFunds,
    InvalidAmount,
    InvalidTransition,
    OrderNotFound,
    SameAccount,
    UnknownAccount,
    UnknownCategory,
)
from delivery_ledger.models.enums import (
    AccountType,
    DeliverMethod,
    Direction,
    DriverMovement,
    EntryType,
    LifecycleTrigger,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)
from delivery_ledger.models.ledger_entry import LedgerEntry
from delivery_ledger.money import Money
from delivery_ledger.services.ledger_engine import LedgerEngine

ACTOR = 1


# --- Helpers ---

def entry_count(db_session) -> int:
    return db_session.execute(select(func.count(LedgerEntry.id))).scalar()


def with_capital(ledger, db_session, usd="1000.00", lbp=1_500_000):
    ledger.set_capital(Decimal(usd), lbp, ACTOR)
    db_session.commit()


def deliver(orders, db_session, order, driver_id=None):
    """Walk an order through the status machine to delivered."""
    orders.change_status(order.id, OrderStatus.ASSIGNED, ACTOR, driver_id=driver_id)
    orders.change_status(order.id, OrderStatus.PICKED_UP, ACTOR)
    orders.change_status(order.id, OrderStatus.IN_TRANSIT, ACTOR)
    orders.change_status(order.id, OrderStatus.DELIVERED, ACTOR)
    db_session.commit()


# --- Capital ---

class TestSetCapital:

    def test_first_capital_is_added(self, ledger, store, db_session):
        result = ledger.set_capital(Decimal("1000.00"), 1_500_000, ACTOR)
        db_session.commit()

        assert len(result.entries) == 1
        assert result.entries[0].entry_type == EntryType.CAPITAL_ADD
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1000.00"), 1_500_000)
        assert store.get_cashbox().capital_is_set

    def test_second_add_rejected(self, ledger, store, db_session):
        with_capital(ledger, db_session)

        with pytest.raises(CapitalAlreadySet):
            ledger.set_capital(Decimal("500.00"), 0, ACTOR)

        assert store.get_balance(AccountType.CASH) == Money(Decimal("1000.00"), 1_500_000)
        assert entry_count(db_session) == 1

    def test_edit_posts_only_the_difference(self, ledger, store, db_session):
        with_capital(ledger, db_session)

        result = ledger.set_capital(Decimal("1200.00"), 1_400_000, ACTOR, edit=True)
        db_session.commit()

        by_direction = {e.direction: e for e in result.entries}
        assert by_direction[Direction.IN].amount == Money(Decimal("200.00"), 0)
        assert by_direction[Direction.OUT].amount == Money(Decimal("0.00"), 100_000)
        assert all(e.entry_type == EntryType.CAPITAL_EDIT for e in result.entries)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1200.00"), 1_400_000)
        assert store.get_cashbox().capital == Money(Decimal("1200.00"), 1_400_000)

    def test_edit_to_same_amount_writes_nothing(self, ledger, db_session):
        with_capital(ledger, db_session)

        result = ledger.set_capital(Decimal("1000.00"), 1_500_000, ACTOR, edit=True)

        assert result.transaction is None
        assert result.entries == []
        assert entry_count(db_session) == 1

    def test_edit_without_capital_adds_it(self, ledger, db_session):
        result = ledger.set_capital(Decimal("300.00"), 0, ACTOR, edit=True)

        assert result.entries[0].entry_type == EntryType.CAPITAL_ADD

    def test_negative_capital_rejected(self, ledger, db_session):
        with pytest.raises(InvalidAmount):
            ledger.set_capital(Decimal("-1.00"), 0, ACTOR)
        assert entry_count(db_session) == 0

    def test_float_amount_rejected(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.set_capital(10.5, 0, ACTOR)


# --- Income and expense ---

class TestIncomeAndExpense:

    def test_capital_income_expense_scenario(self, ledger, store, db_session):
        with_capital(ledger, db_session)

        ledger.record_income(100, 150_000, AccountType.CASH, "Walk-in sale", ACTOR)
        db_session.commit()
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1100.00"), 1_650_000)

        ledger.record_expense(
            50, 75_000, AccountType.CASH, "Office & Admin", None, ACTOR
        )
        db_session.commit()
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1050.00"), 1_575_000)

    def test_expense_records_category(self, ledger, db_session):
        with_capital(ledger, db_session)

        result = ledger.record_expense(
            Decimal("20.00"), 0, "cash", "Operations / Fleet", "Fuel Expense", ACTOR
        )

        entry = result.entries[0]
        assert entry.entry_type == EntryType.EXPENSE
        assert entry.direction == Direction.OUT
        assert entry.category == "Operations / Fleet"
        assert entry.subcategory == "Fuel Expense"

    def test_unknown_category_rejected(self, ledger, db_session):
        with_capital(ledger, db_session)

        with pytest.raises(UnknownCategory):
            ledger.record_expense(10, 0, AccountType.CASH, "Snacks", None, ACTOR)

    def test_subcategory_of_other_category_rejected(self, ledger, db_session):
        with_capital(ledger, db_session)

        with pytest.raises(UnknownCategory):
            ledger.record_expense(10, 0, AccountType.CASH, "Office & Admin", "Fuel Expense", ACTOR)

    def test_expense_cannot_drive_cash_negative(self, ledger, store, db_session):
        with_capital(ledger, db_session, usd="40.00", lbp=0)

        with pytest.raises(InsufficientFunds):
            ledger.record_expense(50, 0, AccountType.CASH, "Office & Admin", "Rent", ACTOR)

        assert store.get_balance(AccountType.CASH) == Money(Decimal("40.00"), 0)
        assert entry_count(db_session) == 1

    def test_overdraft_allowed_when_configured(self, db_session, store):
        ledger = LedgerEngine(db_session, store=store, allow_negative_cashbox=True)

        ledger.record_expense(50, 0, AccountType.WISH, "Office & Admin", "Rent", ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.WISH) == Money(Decimal("-50.00"), 0)

    def test_income_into_client_account_rejected(self, ledger):
        with pytest.raises(UnknownAccount):
            ledger.record_income(10, 0, AccountType.CLIENT, "Nope", ACTOR)

    def test_zero_amount_rejected(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.record_income(0, 0, AccountType.CASH, "Nothing", ACTOR)

    def test_sub_cent_amount_rejected(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.record_income("10.005", 0, AccountType.CASH, "Too precise", ACTOR)

    def test_fractional_lbp_rejected(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.record_income(0, "1500.5", AccountType.CASH, "Half a pound", ACTOR)


# --- Transfers ---

class TestTransfer:

    def test_transfer_conserves_money(self, ledger, store, db_session):
        with_capital(ledger, db_session)
        before = store.get_balance(AccountType.CASH) + store.get_balance(AccountType.WISH)

        result = ledger.transfer(100, 150_000, AccountType.CASH, AccountType.WISH, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CASH) == Money(Decimal("900.00"), 1_350_000)
        assert store.get_balance(AccountType.WISH) == Money(Decimal("100.00"), 150_000)
        after = store.get_balance(AccountType.CASH) + store.get_balance(AccountType.WISH)
        assert after == before

        assert {e.entry_type for e in result.entries} == {
            EntryType.CASH_OUT, EntryType.CASH_IN,
        }
        assert len({e.transaction_id for e in result.entries}) == 1

    def test_same_account_rejected(self, ledger, db_session):
        with_capital(ledger, db_session)

        with pytest.raises(SameAccount):
            ledger.transfer(10, 0, AccountType.CASH, "cash", ACTOR)

    def test_non_cashbox_account_rejected(self, ledger, db_session):
        with_capital(ledger, db_session)

        with pytest.raises(UnknownAccount):
            ledger.transfer(10, 0, AccountType.CASH, AccountType.DRIVER, ACTOR)

    def test_transfer_beyond_balance_rejected(self, ledger, store, db_session):
        with_capital(ledger, db_session)

        with pytest.raises(InsufficientFunds):
            ledger.transfer(2000, 0, AccountType.CASH, AccountType.WISH, ACTOR)

        assert store.get_balance(AccountType.WISH) == Money.zero()

    def test_failure_mid_transfer_leaves_nothing(
        self, ledger, store, db_session, monkeypatch
    ):
        with_capital(ledger, db_session)
        original = store.apply_delta
        calls = []

        def crash_on_second_leg(*args, **kwargs):
            calls.append(args)
            if len(calls) == 2:
                raise RuntimeError("simulated crash")
            return original(*args, **kwargs)

        monkeypatch.setattr(store, "apply_delta", crash_on_second_leg)

        with pytest.raises(RuntimeError):
            ledger.transfer(100, 150_000, AccountType.CASH, AccountType.WISH, ACTOR)

        assert len(calls) == 2
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1000.00"), 1_500_000)
        assert store.get_balance(AccountType.WISH) == Money.zero()
        assert store.get_cashbox().cash_balance == Money(Decimal("1000.00"), 1_500_000)
        assert entry_count(db_session) == 1


# --- Counterparties ---

class TestClientPayment:

    def test_payment_reduces_receivable(self, ledger, store, db_session):
        ledger.record_client_payment(None, 7, 50, 0, PaymentMethod.CASH, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CLIENT, 7) == Money(Decimal("-50.00"), 0)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("50.00"), 0)

    def test_wish_payment_goes_to_wish(self, ledger, store, db_session):
        ledger.record_client_payment(None, 7, 0, 90_000, PaymentMethod.WISH, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.WISH) == Money(Decimal("0.00"), 90_000)
        assert store.get_balance(AccountType.CASH) == Money.zero()

    def test_order_payments_progress_payment_status(self, ledger, make_order, db_session):
        order = make_order(total_usd="100.00")

        ledger.record_client_payment(order.id, None, 40, 0, PaymentMethod.CASH, ACTOR)
        db_session.commit()
        assert order.payment_status == PaymentStatus.PARTIAL

        ledger.record_client_payment(order.id, None, 60, 0, PaymentMethod.CASH, ACTOR)
        db_session.commit()
        assert order.payment_status == PaymentStatus.PAID
        assert not order.cashbox_applied_on_paid

    def test_payment_needs_a_client(self, ledger):
        with pytest.raises(UnknownAccount):
            ledger.record_client_payment(None, None, 10, 0, PaymentMethod.CASH, ACTOR)

    def test_unknown_order_rejected(self, ledger):
        with pytest.raises(OrderNotFound):
            ledger.record_client_payment(999, 7, 10, 0, PaymentMethod.CASH, ACTOR)

    def test_payment_on_cashed_out_order_rejected(
        self, ledger, orders, make_order, store, db_session
    ):
        with_capital(ledger, db_session, usd="100.00", lbp=0)
        order = make_order()
        deliver(orders, db_session, order, driver_id=3)
        ledger.cash_out(order.id, ACTOR)
        db_session.commit()
        cash = store.get_balance(AccountType.CASH)
        entries = entry_count(db_session)

        with pytest.raises(AlreadyCashedOut):
            ledger.record_client_payment(order.id, None, 20, 0, PaymentMethod.CASH, ACTOR)

        assert store.get_balance(AccountType.CLIENT, 9) == Money.zero()
        assert store.get_balance(AccountType.CASH) == cash
        assert entry_count(db_session) == entries

    def test_income_on_cashed_out_order_rejected(
        self, ledger, orders, make_order, db_session
    ):
        with_capital(ledger, db_session)
        order = make_order()
        deliver(orders, db_session, order, driver_id=3)
        ledger.cash_out(order.id, ACTOR)
        db_session.commit()

        with pytest.raises(AlreadyCashedOut):
            ledger.record_income(5, 0, AccountType.CASH, "Tip", ACTOR, order_id=order.id)


class TestDriverMovements:

    def test_advance_return_and_payout(self, ledger, store, db_session):
        with_capital(ledger, db_session, usd="100.00", lbp=0)

        ledger.record_driver_payout(None, 3, 20, 0, ACTOR, movement=DriverMovement.ADVANCE)
        db_session.commit()
        assert store.get_balance(AccountType.DRIVER, 3) == Money(Decimal("20.00"), 0)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("80.00"), 0)

        ledger.record_driver_payout(None, 3, 5, 0, ACTOR, movement=DriverMovement.RETURN)
        db_session.commit()
        assert store.get_balance(AccountType.DRIVER, 3) == Money(Decimal("15.00"), 0)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("85.00"), 0)

        result = ledger.record_driver_payout(None, 3, 15, 0, ACTOR)
        db_session.commit()
        assert [e.entry_type for e in result.entries] == [EntryType.DRIVER_PAYOUT]
        assert store.get_balance(AccountType.DRIVER, 3) == Money.zero()
        assert store.get_balance(AccountType.CASH) == Money(Decimal("85.00"), 0)

    def test_driver_taken_from_order(self, ledger, make_order, store, db_session):
        with_capital(ledger, db_session)
        order = make_order(driver_id=4)

        ledger.record_driver_payout(
            order.id, None, 10, 0, ACTOR, movement=DriverMovement.ADVANCE
        )
        db_session.commit()

        assert store.get_balance(AccountType.DRIVER, 4) == Money(Decimal("10.00"), 0)

    def test_advance_needs_cash(self, ledger):
        with pytest.raises(InsufficientFunds):
            ledger.record_driver_payout(
                None, 3, 20, 0, ACTOR, movement=DriverMovement.ADVANCE
            )

    def test_payout_on_cashed_out_order_rejected(
        self, ledger, orders, make_order, store, db_session
    ):
        with_capital(ledger, db_session)
        order = make_order()
        deliver(orders, db_session, order, driver_id=3)
        ledger.cash_out(order.id, ACTOR)
        db_session.commit()

        with pytest.raises(AlreadyCashedOut):
            ledger.record_driver_payout(
                order.id, None, 10, 0, ACTOR, movement=DriverMovement.ADVANCE
            )

        assert store.get_balance(AccountType.DRIVER, 3) == Money.zero()


class TestThirdPartyPayable:

    def test_payable_increases(self, ledger, store, db_session):
        ledger.record_third_party_payable(None, "aramex", 7, 10_000, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.THIRD_PARTY, "aramex") == Money(
            Decimal("7.00"), 10_000
        )

    def test_payable_on_cancelled_order_rejected(
        self, ledger, orders, make_order, db_session
    ):
        order = make_order()
        orders.change_status(order.id, OrderStatus.CANCELLED, ACTOR)
        db_session.commit()

        with pytest.raises(AlreadyCashedOut):
            ledger.record_third_party_payable(order.id, "dhl", 7, 0, ACTOR)

        assert entry_count(db_session) == 0


class TestLockOrder:

    def test_cashbox_locked_before_accounts(self, ledger, store, monkeypatch):
        calls = []
        get_cashbox = store.get_cashbox
        get_account = store.get_or_create_account

        def cashbox_spy(lock=False):
            if lock:
                calls.append("cashbox")
            return get_cashbox(lock=lock)

        def account_spy(account_type, account_id=None):
            calls.append(account_type.value)
            return get_account(account_type, account_id)

        monkeypatch.setattr(store, "get_cashbox", cashbox_spy)
        monkeypatch.setattr(store, "get_or_create_account", account_spy)

        ledger.record_client_payment(None, 7, 20, 0, PaymentMethod.CASH, ACTOR)

        assert calls[:3] == ["cashbox", "cash", "client"]

    def test_capital_follows_the_same_order(self, ledger, store, monkeypatch):
        calls = []
        get_cashbox = store.get_cashbox
        get_account = store.get_or_create_account

        def cashbox_spy(lock=False):
            if lock:
                calls.append("cashbox")
            return get_cashbox(lock=lock)

        def account_spy(account_type, account_id=None):
            calls.append(account_type.value)
            return get_account(account_type, account_id)

        monkeypatch.setattr(store, "get_cashbox", cashbox_spy)
        monkeypatch.setattr(store, "get_or_create_account", account_spy)

        ledger.set_capital(Decimal("100.00"), 0, ACTOR)

        assert calls.index("cashbox") < calls.index("cash")


# --- Lifecycle effects ---

class TestLifecycleEffects:

    def test_delivery_credits_driver_fee_once(self, ledger, make_order, store, db_session):
        with_capital(ledger, db_session)
        order = make_order(driver_id=3, total_usd="50.00", driver_fee_usd="5.00")

        first = ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()
        entries_after_first = entry_count(db_session)

        assert first.applied
        assert store.get_balance(AccountType.DRIVER, 3) == Money(Decimal("5.00"), 0)
        assert EntryType.DRIVER_ADVANCE in {e.entry_type for e in first.result.entries}

        second = ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()

        assert not second.applied
        assert second.reason
        assert store.get_balance(AccountType.DRIVER, 3) == Money(Decimal("5.00"), 0)
        assert entry_count(db_session) == entries_after_first

    def test_delivery_collects_total(self, ledger, make_order, store, db_session):
        with_capital(ledger, db_session, usd="0.00", lbp=0)
        order = make_order(driver_id=3, total_usd="50.00", driver_fee_usd="5.00")

        ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CASH) == Money(Decimal("45.00"), 0)
        assert store.get_balance(AccountType.CLIENT, 9) == Money(Decimal("-50.00"), 0)
        assert order.cashbox_applied_on_delivery
        assert order.delivered_at is not None

    def test_driver_fee_falls_back_to_delivery_fee(self, ledger, make_order, store, db_session):
        with_capital(ledger, db_session)
        order = make_order(driver_id=3, delivery_fee_usd="4.00")

        ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.DRIVER, 3) == Money(Decimal("4.00"), 0)

    def test_third_party_delivery_books_payable(self, ledger, make_order, store, db_session):
        order = make_order(
            deliver_method=DeliverMethod.THIRD_PARTY,
            third_party_id="aramex",
            third_party_fee_usd="7.00",
        )

        ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.THIRD_PARTY, "aramex") == Money(
            Decimal("7.00"), 0
        )

    def test_prepaid_order_paid_out_on_create(self, make_order, store, ledger, db_session):
        with_capital(ledger, db_session)

        order = make_order(payment_status=PaymentStatus.PREPAID, total_usd="30.00")

        assert order.cashbox_applied_on_create
        assert store.get_balance(AccountType.CASH) == Money(Decimal("970.00"), 1_500_000)
        assert store.get_balance(AccountType.CLIENT, 9) == Money(Decimal("30.00"), 0)

        again = ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.CREATE, ACTOR)
        assert not again.applied
        assert store.get_balance(AccountType.CASH) == Money(Decimal("970.00"), 1_500_000)

    def test_go_to_market_paid_out_on_create(self, make_order, store, ledger, db_session):
        with_capital(ledger, db_session)

        make_order(type=OrderType.GO_TO_MARKET, total_usd="25.00")

        assert store.get_balance(AccountType.CASH) == Money(Decimal("975.00"), 1_500_000)

    def test_unpaid_order_moves_no_money_on_create(self, make_order, db_session):
        order = make_order()

        assert order.cashbox_applied_on_create
        assert entry_count(db_session) == 0

    def test_paid_then_delivered_collects_once(self, ledger, make_order, store, db_session):
        order = make_order(deliver_method=DeliverMethod.THIRD_PARTY, third_party_id="dhl")

        ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.PAID, ACTOR)
        ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CASH) == Money(Decimal("100.00"), 0)
        collected = db_session.execute(
            select(func.count(LedgerEntry.id)).where(
                LedgerEntry.entry_type == EntryType.ORDER_CASH_IN,
                LedgerEntry.account_type == AccountType.CASH,
            )
        ).scalar()
        assert collected == 1

    def test_history_needs_cash_out_or_cancellation(self, ledger, make_order, db_session):
        order = make_order()

        with pytest.raises(InvalidTransition):
            ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.HISTORY, ACTOR)

        assert not order.cashbox_history_moved

    def test_flags_cannot_be_cleared(self, ledger, make_order, db_session):
        with_capital(ledger, db_session)
        order = make_order(driver_id=3)
        ledger.apply_order_lifecycle_effect(order, LifecycleTrigger.DELIVERY, ACTOR)
        db_session.commit()

        with pytest.raises(ValueError):
            order.cashbox_applied_on_delivery = False

    def test_unknown_order(self, ledger):
        with pytest.raises(OrderNotFound):
            ledger.apply_order_lifecycle_effect(999, LifecycleTrigger.DELIVERY, ACTOR)


class TestOrderReversal:

    def test_returned_delivery_is_reversed(
        self, ledger, orders, make_order, store, db_session
    ):
        with_capital(ledger, db_session, usd="100.00", lbp=0)
        order = make_order(total_usd="100.00", driver_fee_usd="5.00")
        deliver(orders, db_session, order, driver_id=3)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("195.00"), 0)

        orders.change_status(order.id, OrderStatus.RETURNED, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CASH) == Money(Decimal("100.00"), 0)
        assert store.get_balance(AccountType.CLIENT, 9) == Money.zero()
        assert store.get_balance(AccountType.DRIVER, 3) == Money.zero()
        assert order.cashbox_history_moved
        assert not order.accounting_cashed
        assert store.reconcile() == []

    def test_reversal_is_one_transaction(
        self, ledger, orders, make_order, db_session
    ):
        with_capital(ledger, db_session, usd="100.00", lbp=0)
        order = make_order(driver_fee_usd="5.00")
        deliver(orders, db_session, order, driver_id=3)

        orders.change_status(order.id, OrderStatus.CANCELLED, ACTOR)
        db_session.commit()

        reversal = db_session.execute(
            select(LedgerEntry).where(
                LedgerEntry.order_id == order.id,
                LedgerEntry.entry_type == EntryType.DRIVER_RETURN,
                LedgerEntry.account_type == AccountType.DRIVER,
            )
        ).scalar_one()
        same_txn = db_session.execute(
            select(LedgerEntry.entry_type).where(
                LedgerEntry.transaction_id == reversal.transaction_id
            )
        ).scalars().all()
        assert EntryType.ORDER_CASH_OUT in same_txn

    def test_cancelled_prepaid_order_recovers_payout(
        self, ledger, orders, make_order, store, db_session
    ):
        with_capital(ledger, db_session, usd="1000.00", lbp=0)
        order = make_order(payment_status=PaymentStatus.PREPAID, total_usd="30.00")

        orders.change_status(order.id, OrderStatus.CANCELLED, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CASH) == Money(Decimal("1000.00"), 0)
        assert store.get_balance(AccountType.CLIENT, 9) == Money.zero()

    def test_returned_third_party_order_drops_payable(
        self, orders, make_order, store, db_session
    ):
        order = make_order(
            deliver_method=DeliverMethod.THIRD_PARTY,
            third_party_id="aramex",
            third_party_fee_usd="7.00",
        )
        deliver(orders, db_session, order)

        orders.change_status(order.id, OrderStatus.RETURNED, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.THIRD_PARTY, "aramex") == Money.zero()
        assert store.get_balance(AccountType.CASH) == Money.zero()

    def test_client_payments_survive_cancellation(
        self, ledger, orders, make_order, store, db_session
    ):
        order = make_order()
        ledger.record_client_payment(order.id, None, 40, 0, PaymentMethod.CASH, ACTOR)
        db_session.commit()

        orders.change_status(order.id, OrderStatus.CANCELLED, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.CLIENT, 9) == Money(Decimal("-40.00"), 0)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("40.00"), 0)

    def test_returned_order_cannot_be_cashed_out(
        self, ledger, orders, make_order, db_session
    ):
        with_capital(ledger, db_session)
        order = make_order()
        deliver(orders, db_session, order, driver_id=3)
        orders.change_status(order.id, OrderStatus.RETURNED, ACTOR)
        db_session.commit()

        with pytest.raises(AlreadyCashedOut):
            ledger.record_client_payment(order.id, None, 5, 0, PaymentMethod.CASH, ACTOR)
        with pytest.raises(InvalidTransition):
            ledger.cash_out(order.id, ACTOR)


# --- Cash-out ---

class TestCashOut:

    def test_cash_out_settles_client_and_driver(
        self, ledger, orders, make_order, store, db_session
    ):
        with_capital(ledger, db_session, usd="1000.00", lbp=0)
        order = make_order(
            total_usd="100.00", delivery_fee_usd="10.00", driver_fee_usd="5.00"
        )
        deliver(orders, db_session, order, driver_id=3)

        assert store.get_balance(AccountType.CASH) == Money(Decimal("1095.00"), 0)
        assert store.get_balance(AccountType.CLIENT, 9) == Money(Decimal("-100.00"), 0)
        assert store.get_balance(AccountType.DRIVER, 3) == Money(Decimal("5.00"), 0)

        result = ledger.cash_out(order.id, ACTOR)
        db_session.commit()

        assert len({e.transaction_id for e in result.entries}) == 1
        assert store.get_balance(AccountType.CLIENT, 9) == Money.zero()
        assert store.get_balance(AccountType.DRIVER, 3) == Money.zero()
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1005.00"), 0)

        assert order.accounting_cashed
        assert order.cashed_at is not None
        assert order.cashbox_history_moved
        assert order.status == OrderStatus.COMPLETED
        assert store.reconcile() == []

    def test_cash_out_pays_third_party(self, ledger, orders, make_order, store, db_session):
        with_capital(ledger, db_session, usd="1000.00", lbp=0)
        order = make_order(
            deliver_method=DeliverMethod.THIRD_PARTY,
            third_party_id="aramex",
            third_party_fee_usd="7.00",
        )
        deliver(orders, db_session, order)

        ledger.cash_out(order.id, ACTOR)
        db_session.commit()

        assert store.get_balance(AccountType.THIRD_PARTY, "aramex") == Money.zero()
        assert store.get_balance(AccountType.CASH) == Money(Decimal("1003.00"), 0)

    def test_prepaid_order_leaves_fee_receivable(
        self, ledger, orders, make_order, store, db_session
    ):
        with_capital(ledger, db_session, usd="1000.00", lbp=0)
        order = make_order(payment_status=PaymentStatus.PREPAID)
        deliver(orders, db_session, order, driver_id=3)

        ledger.cash_out(order.id, ACTOR)
        db_session.commit()

        # Paid out 100 at intake, collected 100, driver kept the 10 fee
        assert store.get_balance(AccountType.CLIENT, 9) == Money(Decimal("10.00"), 0)
        assert store.get_balance(AccountType.CASH) == Money(Decimal("990.00"), 0)
        assert store.get_balance(AccountType.DRIVER, 3) == Money.zero()

    def test_second_cash_out_rejected(self, ledger, orders, make_order, store, db_session):
        with_capital(ledger, db_session)
        order = make_order()
        deliver(orders, db_session, order, driver_id=3)
        ledger.cash_out(order.id, ACTOR)
        db_session.commit()
        balance = store.get_balance(AccountType.CASH)

        with pytest.raises(AlreadyCashedOut):
            ledger.cash_out(order.id, ACTOR)

        assert store.get_balance(AccountType.CASH) == balance

    def test_undelivered_order_rejected(self, ledger, make_order):
        order = make_order()

        with pytest.raises(InvalidTransition):
            ledger.cash_out(order.id, ACTOR)

    def test_unknown_order_rejected(self, ledger):
        with pytest.raises(OrderNotFound):
            ledger.cash_out(12345, ACTOR)
