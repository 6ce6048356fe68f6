"""
Transaction model.

A transaction is one ledger engine operation (an expense, a
transfer, a cash-out...). It carries the business context and
groups the entries the operation posted, so a transfer's two
legs or a cash-out's settlements can always be read together.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    String, DateTime, Integer, ForeignKey,
    Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from delivery_ledger.models.base import Base
from delivery_ledger.models.enums import TransactionType


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    tx_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            create_constraint=True,
        ),
        nullable=False,
    )
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id"), nullable=True, index=True
    )
    description: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    entries: Mapped[list["LedgerEntry"]] = relationship(
        back_populates="transaction",
        order_by="LedgerEntry.id",
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.tx_type.value} ({len(self.entries)} entries)>"
