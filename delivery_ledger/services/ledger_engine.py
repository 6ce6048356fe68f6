"""
Ledger engine: the single mutation point for money.

This service enforces the rules of the cashbox:
1. Every balance change is justified by an immutable ledger entry
2. Entries of one operation are grouped under one transaction
3. Amounts are non-negative Decimal USD and whole-number LBP
4. Cash and wish never go negative (unless configured otherwise)
5. Order lifecycle effects are applied at most once per trigger

Every public operation is atomic. If any step fails the session
is rolled back, so neither the account store nor the entry log
keeps a partial write. On success the work is flushed and the
caller decides when to commit.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from delivery_ledger.config import get_settings
from delivery_ledger.exceptions import (
    AlreadyCashedOut,
    CapitalAlreadySet,
    InsufficientFunds,
    InvalidAmount,
    InvalidTransition,
    LedgerError,
    OrderNotFound,
    SameAccount,
    UnknownAccount,
)
from delivery_ledger.models.enums import (
    AccountType,
    ActorType,
    CASHBOX_ACCOUNT_TYPES,
    DeliverMethod,
    Direction,
    DriverMovement,
    EntryType,
    LifecycleTrigger,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TransactionType,
)
from delivery_ledger.models.ledger_entry import LedgerEntry
from delivery_ledger.models.order import Order
from delivery_ledger.models.transaction import Transaction
from delivery_ledger.money import Money
from delivery_ledger.services.account_store import AccountStore
from delivery_ledger.services.expense_categories import validate_category

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Leg:
    """One staged balance movement, posted as one ledger entry."""

    account_type: AccountType
    account_id: str | None
    entry_type: EntryType
    direction: Direction
    amount: Money
    actor_type: ActorType
    actor_id: str | None = None
    category: str | None = None
    subcategory: str | None = None


@dataclass
class PostingResult:
    """What an operation wrote, and the balances it left behind."""

    transaction: Transaction | None
    entries: list[LedgerEntry] = field(default_factory=list)
    balances: dict[tuple[AccountType, str], Money] = field(default_factory=dict)

    def balance(self, account_type: AccountType, account_id: str) -> Money:
        return self.balances[(account_type, str(account_id))]


@dataclass
class EffectResult:
    """
    Outcome of a lifecycle effect.

    applied=False means the effect had already been applied for
    this order and nothing was written. It is not an error.
    """

    applied: bool
    trigger: LifecycleTrigger
    result: PostingResult | None = None
    reason: str = ""


class LedgerEngine:

    def __init__(
        self,
        db: Session,
        store: AccountStore | None = None,
        allow_negative_cashbox: bool | None = None,
    ):
        self.db = db
        self.store = store or AccountStore(db)
        if allow_negative_cashbox is None:
            allow_negative_cashbox = get_settings().ALLOW_NEGATIVE_CASHBOX
        self.allow_negative_cashbox = allow_negative_cashbox

    # --- Plumbing ---

    @contextmanager
    def _atomic(self, operation: str):
        """Run an operation as all-or-nothing against the session."""
        try:
            yield
            self.db.flush()
        except LedgerError as e:
            self.db.rollback()
            logger.warning("%s rejected: %s", operation, e)
            raise
        except Exception:
            self.db.rollback()
            logger.exception("%s failed, rolled back", operation)
            raise

    def _post(
        self,
        tx_type: TransactionType,
        legs: list[Leg],
        actor: int,
        order_id: int | None = None,
        description: str = "",
    ) -> PostingResult:
        """
        Write a group of legs as one transaction.

        Zero legs are dropped. Locks are always taken in the same
        order: the cashbox row first (when cash or wish is touched),
        then the accounts by account type and id. set_capital holds
        the cashbox lock before it posts, so it follows the same
        order. The funds check runs once everything is staged.
        """
        legs = [leg for leg in legs if not leg.amount.is_zero()]
        if not legs:
            return PostingResult(transaction=None)

        for leg in legs:
            if leg.amount.is_negative():
                raise InvalidAmount(f"Entry amounts must not be negative: {leg.amount}")

        touched = sorted(
            {(leg.account_type, self.store.account_key(leg.account_type, leg.account_id))
             for leg in legs},
            key=lambda k: (k[0].value, k[1]),
        )
        if any(key[0] in CASHBOX_ACCOUNT_TYPES for key in touched):
            self.store.get_cashbox(lock=True)
        accounts = {
            key: self.store.get_or_create_account(key[0], key[1]) for key in touched
        }

        txn = Transaction(
            tx_type=tx_type,
            order_id=order_id,
            description=description,
            created_by=actor,
        )
        self.db.add(txn)
        self.db.flush()

        entries = []
        for leg in legs:
            key = (leg.account_type, self.store.account_key(leg.account_type, leg.account_id))
            account = accounts[key]
            entry = LedgerEntry(
                transaction_id=txn.id,
                account_id=account.id,
                account_type=leg.account_type,
                account_key=account.account_key,
                entry_type=leg.entry_type,
                direction=leg.direction,
                amount_usd=leg.amount.usd,
                amount_lbp=leg.amount.lbp,
                actor_type=leg.actor_type,
                actor_id=leg.actor_id,
                order_id=order_id,
                category=leg.category,
                subcategory=leg.subcategory,
                description=description,
                created_by=actor,
            )
            self.db.add(entry)
            delta = leg.amount if leg.direction == Direction.IN else -leg.amount
            self.store.apply_delta(leg.account_type, leg.account_id, delta)
            entries.append(entry)

        self.db.flush()

        drained = {
            (leg.account_type, self.store.account_key(leg.account_type))
            for leg in legs
            if leg.account_type in CASHBOX_ACCOUNT_TYPES
            and leg.direction == Direction.OUT
        }
        if not self.allow_negative_cashbox:
            for key in sorted(drained, key=lambda k: k[0].value):
                balance = accounts[key].balance
                if balance.is_negative():
                    raise InsufficientFunds(
                        f"Insufficient funds in {key[0].value}: "
                        f"operation would leave {balance}",
                        details={"account_type": key[0].value},
                    )

        logger.info(
            "Posted %s transaction %s: %d entries", tx_type.value, txn.id, len(entries)
        )
        return PostingResult(
            transaction=txn,
            entries=entries,
            balances={key: account.balance for key, account in accounts.items()},
        )

    def _cashbox_account(self, account_type) -> AccountType:
        """Coerce to cash or wish, rejecting every other account."""
        try:
            account_type = AccountType(account_type)
        except ValueError:
            raise UnknownAccount(f"Unknown account type '{account_type}'")
        if account_type not in CASHBOX_ACCOUNT_TYPES:
            raise UnknownAccount(
                f"{account_type.value} is not a cashbox account (use cash or wish)"
            )
        return account_type

    def _positive(self, amount_usd, amount_lbp) -> Money:
        amount = Money.non_negative(amount_usd, amount_lbp)
        if amount.is_zero():
            raise InvalidAmount("Amount must be greater than zero")
        return amount

    def _lock_order(self, order_id: int) -> Order:
        order = self.db.execute(
            select(Order).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if not order:
            raise OrderNotFound(order_id)
        return order

    def _lock_open_order(self, order_id: int) -> Order:
        """Lock an order that still accepts postings against it."""
        order = self._lock_order(order_id)
        if order.accounting_cashed or order.cashbox_history_moved:
            raise AlreadyCashedOut(
                f"Order {order.order_ref} is closed; nothing more can be "
                "posted against it",
                details={"order_id": order.id},
            )
        return order

    def _order_net(
        self,
        order_id: int,
        account_type: AccountType,
        account_id,
        entry_types: tuple[EntryType, ...] | None = None,
    ) -> Money:
        """Sum of this order's entries on one account, as a signed delta."""
        stmt = select(LedgerEntry).where(
            LedgerEntry.order_id == order_id,
            LedgerEntry.account_type == account_type,
            LedgerEntry.account_key == self.store.account_key(account_type, account_id),
        )
        if entry_types:
            stmt = stmt.where(LedgerEntry.entry_type.in_(entry_types))
        total = Money.zero()
        for entry in self.db.execute(stmt).scalars():
            total = total + entry.delta
        return total

    # --- Cashbox operations ---

    def set_capital(
        self,
        amount_usd,
        amount_lbp,
        actor: int,
        account_type: AccountType = AccountType.CASH,
        edit: bool = False,
    ) -> PostingResult:
        """
        Record the capital the cashbox was opened with.

        The first call posts capital_add. After that, capital can
        only be edited: the difference from the current capital is
        posted as capital_edit, so repeating an edit with the same
        amounts writes nothing.
        """
        with self._atomic("set_capital"):
            amount = Money.non_negative(amount_usd, amount_lbp)
            account_type = self._cashbox_account(account_type)
            cashbox = self.store.get_cashbox(lock=True)
            actor_id = cashbox.name

            if cashbox.capital_is_set and not edit:
                raise CapitalAlreadySet(
                    f"Capital for cashbox '{cashbox.name}' is already set; "
                    "edit it instead"
                )

            if cashbox.capital_is_set:
                diff = amount - cashbox.capital
                legs = [
                    Leg(account_type, None, EntryType.CAPITAL_EDIT, Direction.IN,
                        diff.positive_part(), ActorType.CASHBOX, actor_id),
                    Leg(account_type, None, EntryType.CAPITAL_EDIT, Direction.OUT,
                        diff.negative_part(), ActorType.CASHBOX, actor_id),
                ]
                description = "Capital edit"
            else:
                legs = [
                    Leg(account_type, None, EntryType.CAPITAL_ADD, Direction.IN,
                        amount, ActorType.CASHBOX, actor_id),
                ]
                description = "Initial capital"

            cashbox.initial_capital_usd = amount.usd
            cashbox.initial_capital_lbp = amount.lbp
            cashbox.capital_set_at = datetime.utcnow()
            cashbox.capital_set_by = actor

            result = self._post(TransactionType.CAPITAL, legs, actor,
                                description=description)
        return result

    def record_income(
        self,
        amount_usd,
        amount_lbp,
        account_type: AccountType,
        description: str,
        actor: int,
        order_id: int | None = None,
    ) -> PostingResult:
        with self._atomic("record_income"):
            amount = self._positive(amount_usd, amount_lbp)
            account_type = self._cashbox_account(account_type)
            if order_id is not None:
                self._lock_open_order(order_id)
            result = self._post(
                TransactionType.INCOME,
                [Leg(account_type, None, EntryType.INCOME, Direction.IN,
                     amount, ActorType.CASHBOX, self.store.cashbox_name)],
                actor,
                order_id=order_id,
                description=description,
            )
        return result

    def record_expense(
        self,
        amount_usd,
        amount_lbp,
        account_type: AccountType,
        category: str | None,
        subcategory: str | None,
        actor: int,
        description: str = "",
    ) -> PostingResult:
        """Book an expense against the catalogue, out of cash or wish."""
        with self._atomic("record_expense"):
            amount = self._positive(amount_usd, amount_lbp)
            account_type = self._cashbox_account(account_type)
            validate_category(category, subcategory)
            result = self._post(
                TransactionType.EXPENSE,
                [Leg(account_type, None, EntryType.EXPENSE, Direction.OUT,
                     amount, ActorType.CASHBOX, self.store.cashbox_name,
                     category=category, subcategory=subcategory)],
                actor,
                description=description or subcategory or category or "Expense",
            )
        return result

    def transfer(
        self,
        amount_usd,
        amount_lbp,
        from_account: AccountType,
        to_account: AccountType,
        actor: int,
        description: str = "",
    ) -> PostingResult:
        """
        Move money between the cash and wish accounts.

        Both legs share one transaction, so the total held in the
        cashbox is unchanged.
        """
        with self._atomic("transfer"):
            amount = self._positive(amount_usd, amount_lbp)
            if str(getattr(from_account, "value", from_account)) == str(
                getattr(to_account, "value", to_account)
            ):
                raise SameAccount("Cannot transfer to the same account")
            source = self._cashbox_account(from_account)
            destination = self._cashbox_account(to_account)
            name = self.store.cashbox_name
            result = self._post(
                TransactionType.TRANSFER,
                [
                    Leg(source, None, EntryType.CASH_OUT, Direction.OUT,
                        amount, ActorType.CASHBOX, name),
                    Leg(destination, None, EntryType.CASH_IN, Direction.IN,
                        amount, ActorType.CASHBOX, name),
                ],
                actor,
                description=description
                or f"Transfer {source.value} to {destination.value}",
            )
        return result

    # --- Counterparty operations ---

    def record_client_payment(
        self,
        order_id: int | None,
        client_id,
        amount_usd,
        amount_lbp,
        method: PaymentMethod,
        actor: int,
        description: str = "",
    ) -> PostingResult:
        """
        Take a payment from a client into cash or wish.

        The client's receivable goes down by the amount paid. When
        the payment is for an order, the order's payment status
        moves to partial or paid based on all client payments
        recorded against it.
        """
        with self._atomic("record_client_payment"):
            amount = self._positive(amount_usd, amount_lbp)
            try:
                method = PaymentMethod(method)
            except ValueError:
                raise UnknownAccount(f"Unknown payment method '{method}'")
            cashbox_account = AccountType(method.value)

            order = self._lock_open_order(order_id) if order_id is not None else None
            if client_id is None and order is not None:
                client_id = order.client_id
            client_key = self.store.account_key(AccountType.CLIENT, client_id)

            result = self._post(
                TransactionType.CLIENT_PAYMENT,
                [
                    Leg(AccountType.CLIENT, client_key, EntryType.CLIENT_PAYMENT,
                        Direction.OUT, amount, ActorType.CLIENT, client_key),
                    Leg(cashbox_account, None, EntryType.CLIENT_PAYMENT,
                        Direction.IN, amount, ActorType.CLIENT, client_key),
                ],
                actor,
                order_id=order_id,
                description=description or f"Payment from client {client_key}",
            )

            if order is not None:
                self._progress_payment_status(order, client_key)
        return result

    def _progress_payment_status(self, order: Order, client_key: str) -> None:
        paid = -self._order_net(
            order.id, AccountType.CLIENT, client_key, (EntryType.CLIENT_PAYMENT,)
        )
        total = order.total
        fully_paid = paid.usd >= total.usd and paid.lbp >= total.lbp
        target = PaymentStatus.PAID if fully_paid else PaymentStatus.PARTIAL

        if target != order.payment_status and order.can_transition_payment_to(target):
            logger.info(
                "Order %s payment status %s -> %s",
                order.order_ref, order.payment_status.value, target.value,
            )
            order.payment_status = target

    def record_driver_payout(
        self,
        order_id: int | None,
        driver_id,
        amount_usd,
        amount_lbp,
        actor: int,
        movement: DriverMovement = DriverMovement.PAYOUT,
        account_type: AccountType = AccountType.CASH,
    ) -> PostingResult:
        """
        Move money between the cashbox and a driver.

        The driver account holds what the driver carries on behalf
        of the company:

            advance  cashbox OUT, driver IN   (money handed to the driver)
            return   driver OUT, cashbox IN   (money handed back)
            payout   driver OUT               (driver keeps it as earnings)
        """
        with self._atomic("record_driver_payout"):
            amount = self._positive(amount_usd, amount_lbp)
            movement = DriverMovement(movement)
            account_type = self._cashbox_account(account_type)
            if order_id is not None:
                order = self._lock_open_order(order_id)
                if driver_id is None:
                    driver_id = order.driver_id
            driver_key = self.store.account_key(AccountType.DRIVER, driver_id)

            result = self._post(
                TransactionType.DRIVER_MOVEMENT,
                self._driver_legs(movement, driver_key, amount, account_type),
                actor,
                order_id=order_id,
                description=f"Driver {movement.value} for driver {driver_key}",
            )
        return result

    def _driver_legs(
        self,
        movement: DriverMovement,
        driver_key: str,
        amount: Money,
        account_type: AccountType = AccountType.CASH,
    ) -> list[Leg]:
        if movement == DriverMovement.ADVANCE:
            return [
                Leg(AccountType.DRIVER, driver_key, EntryType.DRIVER_ADVANCE,
                    Direction.IN, amount, ActorType.DRIVER, driver_key),
                Leg(account_type, None, EntryType.DRIVER_ADVANCE,
                    Direction.OUT, amount, ActorType.DRIVER, driver_key),
            ]
        if movement == DriverMovement.RETURN:
            return [
                Leg(AccountType.DRIVER, driver_key, EntryType.DRIVER_RETURN,
                    Direction.OUT, amount, ActorType.DRIVER, driver_key),
                Leg(account_type, None, EntryType.DRIVER_RETURN,
                    Direction.IN, amount, ActorType.DRIVER, driver_key),
            ]
        return [
            Leg(AccountType.DRIVER, driver_key, EntryType.DRIVER_PAYOUT,
                Direction.OUT, amount, ActorType.DRIVER, driver_key),
        ]

    def record_third_party_payable(
        self,
        order_id: int | None,
        third_party_id,
        amount_usd,
        amount_lbp,
        actor: int,
    ) -> PostingResult:
        """Record what the company owes a third-party carrier."""
        with self._atomic("record_third_party_payable"):
            amount = self._positive(amount_usd, amount_lbp)
            if order_id is not None:
                order = self._lock_open_order(order_id)
                if third_party_id is None:
                    third_party_id = order.third_party_id
            tp_key = self.store.account_key(AccountType.THIRD_PARTY, third_party_id)
            result = self._post(
                TransactionType.THIRD_PARTY_PAYABLE,
                [Leg(AccountType.THIRD_PARTY, tp_key, EntryType.THIRD_PARTY_PAYABLE,
                     Direction.IN, amount, ActorType.THIRD_PARTY, tp_key)],
                actor,
                order_id=order_id,
                description=f"Payable to third party {tp_key}",
            )
        return result

    # --- Order lifecycle ---

    def _collection_legs(self, order: Order) -> list[Leg]:
        """Order total comes into cash; the client is owed it."""
        if order.client_id is None:
            return [
                Leg(AccountType.CASH, None, EntryType.ORDER_CASH_IN, Direction.IN,
                    order.total, ActorType.ORDER, str(order.id)),
            ]
        client_key = str(order.client_id)
        return [
            Leg(AccountType.CASH, None, EntryType.ORDER_CASH_IN, Direction.IN,
                order.total, ActorType.CLIENT, client_key),
            Leg(AccountType.CLIENT, client_key, EntryType.ORDER_CASH_IN,
                Direction.OUT, order.total, ActorType.CLIENT, client_key),
        ]

    def _effect_legs(self, order: Order, trigger: LifecycleTrigger) -> list[Leg]:
        if trigger == LifecycleTrigger.CREATE:
            if not order.pays_out_on_create:
                return []
            # The company pays for the goods up front
            if order.client_id is None:
                return [
                    Leg(AccountType.CASH, None, EntryType.ORDER_CASH_OUT,
                        Direction.OUT, order.total, ActorType.ORDER, str(order.id)),
                ]
            client_key = str(order.client_id)
            return [
                Leg(AccountType.CASH, None, EntryType.ORDER_CASH_OUT,
                    Direction.OUT, order.total, ActorType.CLIENT, client_key),
                Leg(AccountType.CLIENT, client_key, EntryType.ORDER_CASH_OUT,
                    Direction.IN, order.total, ActorType.CLIENT, client_key),
            ]

        if trigger == LifecycleTrigger.DELIVERY:
            legs = [] if order.is_collected else self._collection_legs(order)
            if order.deliver_method == DeliverMethod.IN_HOUSE and order.driver_id:
                legs += self._driver_legs(
                    DriverMovement.ADVANCE, str(order.driver_id), order.driver_fee
                )
            elif order.deliver_method == DeliverMethod.THIRD_PARTY and order.third_party_id:
                tp_key = str(order.third_party_id)
                legs.append(
                    Leg(AccountType.THIRD_PARTY, tp_key,
                        EntryType.THIRD_PARTY_PAYABLE, Direction.IN,
                        order.third_party_fee, ActorType.THIRD_PARTY, tp_key)
                )
            return legs

        if trigger == LifecycleTrigger.PAID:
            return [] if order.is_collected else self._collection_legs(order)

        if trigger == LifecycleTrigger.HISTORY and not order.accounting_cashed:
            return self._reversal_legs(order)

        return []

    def _reversal_legs(self, order: Order) -> list[Leg]:
        """
        Undo what the lifecycle posted for a cancelled or returned order.

        The order cash flow (create payout, delivery or paid
        collection) is reversed against cash and the client. The
        driver hands back what they hold for the order. Any
        third-party payable is dropped. Client payments recorded
        against the order stay as they are.
        """
        legs: list[Leg] = []
        flow = self._order_net(
            order.id, AccountType.CASH, None,
            (EntryType.ORDER_CASH_IN, EntryType.ORDER_CASH_OUT),
        )
        if order.client_id is None:
            actor_type, actor_id = ActorType.ORDER, str(order.id)
        else:
            actor_type, actor_id = ActorType.CLIENT, str(order.client_id)

        refund = flow.positive_part()
        recover = flow.negative_part()
        legs.append(Leg(AccountType.CASH, None, EntryType.ORDER_CASH_OUT,
                        Direction.OUT, refund, actor_type, actor_id))
        legs.append(Leg(AccountType.CASH, None, EntryType.ORDER_CASH_IN,
                        Direction.IN, recover, actor_type, actor_id))
        if order.client_id is not None:
            legs.append(Leg(AccountType.CLIENT, actor_id, EntryType.ORDER_CASH_OUT,
                            Direction.IN, refund, actor_type, actor_id))
            legs.append(Leg(AccountType.CLIENT, actor_id, EntryType.ORDER_CASH_IN,
                            Direction.OUT, recover, actor_type, actor_id))

        if order.driver_id is not None:
            driver_key = str(order.driver_id)
            held = self._order_net(order.id, AccountType.DRIVER, driver_key)
            legs += self._driver_legs(
                DriverMovement.RETURN, driver_key, held.positive_part()
            )
            legs += self._driver_legs(
                DriverMovement.ADVANCE, driver_key, held.negative_part()
            )

        if order.third_party_id:
            tp_key = str(order.third_party_id)
            payable = self._order_net(
                order.id, AccountType.THIRD_PARTY, tp_key
            ).positive_part()
            legs.append(Leg(AccountType.THIRD_PARTY, tp_key,
                            EntryType.THIRD_PARTY_PAYABLE, Direction.OUT,
                            payable, ActorType.THIRD_PARTY, tp_key))
        return legs

    def apply_order_lifecycle_effect(
        self, order: Order | int, trigger: LifecycleTrigger, actor: int
    ) -> EffectResult:
        """
        Apply the ledger effect of an order event, at most once.

        The order row is locked and its flag for the trigger is
        read inside the same transaction as the effect is written.
        If the flag is already set nothing is posted and the result
        reports applied=False.
        """
        trigger = LifecycleTrigger(trigger)
        order_id = order.id if isinstance(order, Order) else order

        with self._atomic(f"apply_order_lifecycle_effect({trigger.value})"):
            order = self._lock_order(order_id)

            if order.is_applied(trigger):
                logger.debug(
                    "Order %s: %s effect already applied, skipping",
                    order.order_ref, trigger.value,
                )
                return EffectResult(
                    applied=False,
                    trigger=trigger,
                    reason=f"{trigger.value} effect already applied",
                )

            if trigger == LifecycleTrigger.HISTORY and not (
                order.accounting_cashed
                or order.status in (OrderStatus.CANCELLED, OrderStatus.RETURNED)
            ):
                raise InvalidTransition(
                    f"Order {order.order_ref} must be cashed out, cancelled or "
                    "returned before it moves to history"
                )

            legs = self._effect_legs(order, trigger)
            now = datetime.utcnow()
            order.mark_applied(trigger)
            if trigger == LifecycleTrigger.DELIVERY and order.delivered_at is None:
                order.delivered_at = now
            if trigger == LifecycleTrigger.HISTORY:
                order.moved_at = now

            result = self._post(
                TransactionType.ORDER_EFFECT,
                legs,
                actor,
                order_id=order.id,
                description=f"Order {order.order_ref}: {trigger.value}",
            )

        return EffectResult(applied=True, trigger=trigger, result=result)

    def cash_out(self, order_id: int, actor: int) -> PostingResult:
        """
        Settle everything still open on one order and move it to history.

        In one transaction:
        - the client is charged the delivery fee, and whatever the
          company still owes the client for this order is paid out
        - the driver's open balance for the order is settled as earnings
        - third-party payables for the order are paid out
        """
        with self._atomic("cash_out"):
            order = self._lock_order(order_id)
            if order.accounting_cashed:
                raise AlreadyCashedOut(
                    f"Order {order.order_ref} is already cashed out",
                    details={"order_id": order.id},
                )
            if order.status not in (OrderStatus.DELIVERED, OrderStatus.COMPLETED):
                raise InvalidTransition(
                    f"Order {order.order_ref} cannot be cashed out while "
                    f"{order.status.value}"
                )

            inflows: list[Leg] = []
            outflows: list[Leg] = []

            if order.client_id is not None:
                client_key = str(order.client_id)
                fee = order.delivery_fee
                inflows.append(
                    Leg(AccountType.CLIENT, client_key, EntryType.INCOME,
                        Direction.IN, fee, ActorType.CLIENT, client_key,
                        category="delivery")
                )
                owed = -(self._order_net(order.id, AccountType.CLIENT, client_key) + fee)
                payout = owed.positive_part()
                outflows += [
                    Leg(AccountType.CASH, None, EntryType.CASH_OUT, Direction.OUT,
                        payout, ActorType.CLIENT, client_key),
                    Leg(AccountType.CLIENT, client_key, EntryType.CASH_OUT,
                        Direction.IN, payout, ActorType.CLIENT, client_key),
                ]

            if order.driver_id is not None:
                driver_key = str(order.driver_id)
                held = self._order_net(order.id, AccountType.DRIVER, driver_key)
                if not held.positive_part().is_zero():
                    outflows += self._driver_legs(
                        DriverMovement.PAYOUT, driver_key, held.positive_part()
                    )
                if not held.negative_part().is_zero():
                    # Driver handed back more than they held for this order
                    outflows += self._driver_legs(
                        DriverMovement.ADVANCE, driver_key, held.negative_part()
                    )

            if order.third_party_id:
                tp_key = str(order.third_party_id)
                payable = self._order_net(
                    order.id, AccountType.THIRD_PARTY, tp_key
                ).positive_part()
                outflows += [
                    Leg(AccountType.CASH, None, EntryType.THIRD_PARTY_PAYOUT,
                        Direction.OUT, payable, ActorType.THIRD_PARTY, tp_key),
                    Leg(AccountType.THIRD_PARTY, tp_key, EntryType.THIRD_PARTY_PAYOUT,
                        Direction.OUT, payable, ActorType.THIRD_PARTY, tp_key),
                ]

            result = self._post(
                TransactionType.CASH_OUT,
                inflows + outflows,
                actor,
                order_id=order.id,
                description=f"Cash-out of order {order.order_ref}",
            )

            now = datetime.utcnow()
            order.accounting_cashed = True
            order.cashed_at = now
            if order.status == OrderStatus.DELIVERED:
                order.status = OrderStatus.COMPLETED
                order.completed_at = now
            order.cashbox_history_moved = True
            order.moved_at = now

        logger.info("Order %s cashed out", order.order_ref)
        return result
