"""
Ledger entry model.

Each entry moves one account's balance in one direction by a
non-negative amount in USD and LBP. Entries are immutable: once
posted they are never modified or deleted. An account's balance
is the sum of its IN entries minus the sum of its OUT entries.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, BigInteger, Integer, ForeignKey,
    Enum as SAEnum, event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from delivery_ledger.models.base import Base
from delivery_ledger.models.enums import (
    AccountType,
    ActorType,
    Direction,
    EntryType,
)
from delivery_ledger.money import Money


class LedgerEntry(Base):
    """
    An append-only balance movement.

    account_type/account_key duplicate the referenced account's
    identity so the log can be read and filtered on its own.
    """

    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"), nullable=False, index=True
    )
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum", create_constraint=True),
        nullable=False,
        index=True,
    )
    account_key: Mapped[str] = mapped_column(String(100), nullable=False)
    entry_type: Mapped[EntryType] = mapped_column(
        SAEnum(EntryType, name="entry_type_enum", create_constraint=True),
        nullable=False,
        index=True,
    )
    direction: Mapped[Direction] = mapped_column(
        SAEnum(Direction, name="direction_enum", create_constraint=True),
        nullable=False,
    )
    amount_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0.00")
    )
    amount_lbp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )
    actor_type: Mapped[ActorType] = mapped_column(
        SAEnum(ActorType, name="actor_type_enum", create_constraint=True),
        nullable=False,
    )
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id"), nullable=True, index=True
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    transaction: Mapped["Transaction"] = relationship(back_populates="entries")
    account: Mapped["Account"] = relationship(back_populates="entries")

    @property
    def amount(self) -> Money:
        return Money(Decimal(self.amount_usd), int(self.amount_lbp))

    @property
    def delta(self) -> Money:
        """Signed effect of this entry on its account's balance."""
        if self.direction == Direction.IN:
            return self.amount
        return -self.amount

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.entry_type.value} {self.direction.value} "
            f"{self.account_type.value}:{self.account_key} "
            f"{self.amount_usd} USD / {self.amount_lbp} LBP>"
        )


@event.listens_for(LedgerEntry, "before_update")
def _reject_entry_update(mapper, connection, target):
    raise ValueError("Ledger entries are immutable")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_entry_delete(mapper, connection, target):
    raise ValueError("Ledger entries cannot be deleted")
