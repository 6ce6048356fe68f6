"""
Shared enumerations for database models.

Python enums mapped to database enums mean an unknown
entry_type or order status is rejected by the database,
not only by Python validation.
"""

import enum


class AccountType(str, enum.Enum):
    """Kinds of balance holders tracked by the account store."""
    CASH = "cash"
    WISH = "wish"
    CLIENT = "client"
    DRIVER = "driver"
    THIRD_PARTY = "third_party"


# Accounts that live in the cashbox (money actually on hand)
CASHBOX_ACCOUNT_TYPES = frozenset({AccountType.CASH, AccountType.WISH})


class Direction(str, enum.Enum):
    """IN increases the account balance, OUT decreases it."""
    IN = "IN"
    OUT = "OUT"


class EntryType(str, enum.Enum):
    """Canonical kinds of ledger entries."""
    CAPITAL_ADD = "capital_add"
    CAPITAL_EDIT = "capital_edit"
    INCOME = "income"
    EXPENSE = "expense"
    CASH_IN = "cash_in"
    CASH_OUT = "cash_out"
    CLIENT_PAYMENT = "client_payment"
    DRIVER_ADVANCE = "driver_advance"
    DRIVER_RETURN = "driver_return"
    DRIVER_PAYOUT = "driver_payout"
    THIRD_PARTY_PAYABLE = "third_party_payable"
    THIRD_PARTY_PAYOUT = "third_party_payout"
    ORDER_CASH_IN = "order_cash_in"
    ORDER_CASH_OUT = "order_cash_out"


class ActorType(str, enum.Enum):
    """Who a ledger entry concerns."""
    CASHBOX = "cashbox"
    CLIENT = "client"
    DRIVER = "driver"
    THIRD_PARTY = "third_party"
    ORDER = "order"


class TransactionType(str, enum.Enum):
    """The ledger engine operation that produced a group of entries."""
    CAPITAL = "capital"
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    CLIENT_PAYMENT = "client_payment"
    DRIVER_MOVEMENT = "driver_movement"
    THIRD_PARTY_PAYABLE = "third_party_payable"
    ORDER_EFFECT = "order_effect"
    CASH_OUT = "cash_out"


class DriverMovement(str, enum.Enum):
    ADVANCE = "advance"
    RETURN = "return"
    PAYOUT = "payout"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    WISH = "wish"


class OrderType(str, enum.Enum):
    ECOMMERCE = "ecommerce"
    INSTANT = "instant"
    GO_TO_MARKET = "go_to_market"


class DeliverMethod(str, enum.Enum):
    IN_HOUSE = "in_house"
    THIRD_PARTY = "third_party"


class OrderStatus(str, enum.Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    PREPAID = "prepaid"
    REFUNDED = "refunded"


class LifecycleTrigger(str, enum.Enum):
    """Order events that may carry a ledger effect."""
    CREATE = "create"
    DELIVERY = "delivery"
    PAID = "paid"
    HISTORY = "history"
