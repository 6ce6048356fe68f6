"""
Pydantic schemas for cashbox operations.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from delivery_ledger.models.enums import AccountType


class CapitalRequest(BaseModel):
    amount_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    amount_lbp: int = Field(default=0, ge=0)
    account_type: AccountType = AccountType.CASH
    actor_id: int


class _AmountRequest(BaseModel):
    amount_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    amount_lbp: int = Field(default=0, ge=0)
    actor_id: int

    @model_validator(mode="after")
    def amount_must_be_positive(self):
        if self.amount_usd == 0 and self.amount_lbp == 0:
            raise ValueError("amount_usd or amount_lbp must be greater than zero")
        return self


class IncomeRequest(_AmountRequest):
    account_type: AccountType = AccountType.CASH
    description: str = Field(default="Income", max_length=255)
    order_id: int | None = None


class ExpenseRequest(_AmountRequest):
    account_type: AccountType = AccountType.CASH
    category: str | None = Field(default=None, max_length=100)
    subcategory: str | None = Field(default=None, max_length=100)
    description: str = Field(default="", max_length=255)


class TransferRequest(_AmountRequest):
    from_account: AccountType = AccountType.CASH
    to_account: AccountType = AccountType.WISH
    description: str = Field(default="", max_length=255)


class CashboxResponse(BaseModel):
    """Current cashbox position."""
    name: str
    cash_usd: Decimal
    cash_lbp: int
    wish_usd: Decimal
    wish_lbp: int
    total_usd: Decimal
    total_lbp: int
    usd_equivalent: Decimal
    initial_capital_usd: Decimal
    initial_capital_lbp: int
    capital_set_at: datetime | None

    @classmethod
    def build(cls, cashbox, summary) -> "CashboxResponse":
        return cls(
            name=cashbox.name,
            cash_usd=summary.cash.usd,
            cash_lbp=summary.cash.lbp,
            wish_usd=summary.wish.usd,
            wish_lbp=summary.wish.lbp,
            total_usd=summary.total.usd,
            total_lbp=summary.total.lbp,
            usd_equivalent=summary.usd_equivalent,
            initial_capital_usd=summary.capital.usd,
            initial_capital_lbp=summary.capital.lbp,
            capital_set_at=cashbox.capital_set_at,
        )


class ExpenseCategoryResponse(BaseModel):
    category: str
    subcategories: list[str]
