"""
Ledger errors.

Every error a ledger operation can raise is a LedgerError. They
are all recoverable: the API layer maps them to an HTTP status
and a user-facing message. A lifecycle effect that has already
been applied is not an error and never raises.

LedgerError subclasses ValueError so callers that only know
about "bad input" keep working.
"""

from typing import Any


class LedgerError(ValueError):
    """Base class for ledger failures."""

    error_code: str = "ERR_LEDGER"
    status_code: int = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidAmount(LedgerError):
    """Raised for negative, non-numeric or over-precise amounts."""
    error_code = "ERR_INVALID_AMOUNT"


class InsufficientFunds(LedgerError):
    """Raised when an operation would leave a cashbox account negative."""
    error_code = "ERR_INSUFFICIENT_FUNDS"
    status_code = 409


class SameAccount(LedgerError):
    """Raised when a transfer names the same account on both sides."""
    error_code = "ERR_SAME_ACCOUNT"


class UnknownAccount(LedgerError):
    """Raised for an account that does not exist or cannot be used here."""
    error_code = "ERR_UNKNOWN_ACCOUNT"
    status_code = 404


class UnknownCategory(LedgerError):
    """Raised for an expense category outside the catalogue."""
    error_code = "ERR_UNKNOWN_CATEGORY"


class CapitalAlreadySet(LedgerError):
    """Raised when capital is added a second time instead of edited."""
    error_code = "ERR_CAPITAL_ALREADY_SET"
    status_code = 409


class AlreadyCashedOut(LedgerError):
    """Raised when cashing out, or posting to, an order that is already settled."""
    error_code = "ERR_ALREADY_CASHED_OUT"
    status_code = 409


class OrderNotFound(LedgerError):
    error_code = "ERR_ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_id: Any):
        super().__init__(
            f"Order {order_id} not found", details={"order_id": order_id}
        )


class InvalidTransition(LedgerError):
    """Raised for an order state change the state machine forbids."""
    error_code = "ERR_INVALID_TRANSITION"
    status_code = 409


class DuplicateOrder(LedgerError):
    """Raised when an order reference is already taken."""
    error_code = "ERR_DUPLICATE_ORDER"
    status_code = 409
