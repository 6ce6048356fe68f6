"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from delivery_ledger.models.base import Base
from delivery_ledger.models.enums import (
    AccountType,
    ActorType,
    DeliverMethod,
    Direction,
    DriverMovement,
    EntryType,
    LifecycleTrigger,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
    TransactionType,
)
from delivery_ledger.models.audit_log import AuditLog
from delivery_ledger.models.account import Account
from delivery_ledger.models.cashbox import Cashbox
from delivery_ledger.models.order import Order
from delivery_ledger.models.transaction import Transaction
from delivery_ledger.models.ledger_entry import LedgerEntry

__all__ = [
    "Base",
    "AccountType",
    "ActorType",
    "DeliverMethod",
    "Direction",
    "DriverMovement",
    "EntryType",
    "LifecycleTrigger",
    "OrderStatus",
    "OrderType",
    "PaymentMethod",
    "PaymentStatus",
    "TransactionType",
    "AuditLog",
    "Account",
    "Cashbox",
    "Order",
    "Transaction",
    "LedgerEntry",
]
