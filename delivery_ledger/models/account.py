"""
Account model.

One row per balance holder: the cash and wish accounts of a
cashbox, and every client, driver and third-party carrier that
has ever had money posted against it. The balance columns are a
running total of the ledger entries for the account and are only
written by the AccountStore.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, BigInteger,
    Enum as SAEnum, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from delivery_ledger.models.base import Base
from delivery_ledger.models.enums import AccountType
from delivery_ledger.money import Money


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("account_type", "account_key", name="uq_account_identity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum", create_constraint=True),
        nullable=False,
    )
    # Cashbox name for cash/wish, entity id for everyone else
    account_key: Mapped[str] = mapped_column(String(100), nullable=False)
    balance_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )
    balance_lbp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="account"
    )

    @property
    def balance(self) -> Money:
        return Money(Decimal(self.balance_usd), int(self.balance_lbp))

    def __repr__(self) -> str:
        return (
            f"<Account {self.account_type.value}:{self.account_key} "
            f"{self.balance_usd} USD / {self.balance_lbp} LBP>"
        )
