"""
Audit log model.

Records order state changes and skipped lifecycle effects so
every status change behind a ledger movement can be traced.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Integer, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from delivery_ledger.models.base import Base


class AuditLog(Base):
    """
    One order event.

    event_type is order_created, status_changed,
    payment_status_changed or lifecycle_noop; details is a JSON
    object (old/new state, or the skipped trigger and why).
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} order={self.order_id}>"


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ValueError("Audit records are append-only")
