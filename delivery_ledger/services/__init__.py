"""Business logic services."""

from delivery_ledger.services.reporting import ReportingService
from delivery_ledger.services.account_store import AccountStore
from delivery_ledger.services.ledger_engine import LedgerEngine
from delivery_ledger.services.order_service import OrderService

__all__ = ["ReportingService", "AccountStore", "LedgerEngine", "OrderService"]
