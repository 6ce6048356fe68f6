"""
Cashbox model.

A named cashbox caches the balances of its cash and wish
accounts next to the capital it was opened with. The cache is
written in the same transaction as the underlying accounts, so
it always equals the sum of their entries.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, BigInteger, Integer
from sqlalchemy.orm import Mapped, mapped_column

from delivery_ledger.models.base import Base
from delivery_ledger.models.enums import AccountType
from delivery_ledger.money import Money


class Cashbox(Base):
    __tablename__ = "cashboxes"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    cash_balance_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )
    cash_balance_lbp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    wish_balance_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )
    wish_balance_lbp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )

    initial_capital_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )
    initial_capital_lbp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    capital_set_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, default=None
    )
    capital_set_by: Mapped[int | None] = mapped_column(
        Integer, nullable=True, default=None
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def capital_is_set(self) -> bool:
        return self.capital_set_at is not None

    @property
    def capital(self) -> Money:
        return Money(Decimal(self.initial_capital_usd), int(self.initial_capital_lbp))

    @property
    def cash_balance(self) -> Money:
        return Money(Decimal(self.cash_balance_usd), int(self.cash_balance_lbp))

    @property
    def wish_balance(self) -> Money:
        return Money(Decimal(self.wish_balance_usd), int(self.wish_balance_lbp))

    @property
    def total_balance(self) -> Money:
        """Main balance is always cash + wish."""
        return self.cash_balance + self.wish_balance

    def apply(self, account_type: AccountType, delta: Money) -> None:
        """Move the cached balance of the cash or wish account by delta."""
        if account_type == AccountType.CASH:
            self.cash_balance_usd = Decimal(self.cash_balance_usd) + delta.usd
            self.cash_balance_lbp = int(self.cash_balance_lbp) + delta.lbp
        elif account_type == AccountType.WISH:
            self.wish_balance_usd = Decimal(self.wish_balance_usd) + delta.usd
            self.wish_balance_lbp = int(self.wish_balance_lbp) + delta.lbp
        else:
            raise ValueError(f"{account_type.value} is not a cashbox account")

    def __repr__(self) -> str:
        return f"<Cashbox {self.name} cash={self.cash_balance} wish={self.wish_balance}>"
