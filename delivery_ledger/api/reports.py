"""
Report endpoints.

Per-account totals derived from the entry log, and the
reconciliation check that recomputes every stored balance.
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from delivery_ledger.models.base import get_db
from delivery_ledger.models.enums import AccountType, ActorType
from delivery_ledger.schemas.report import (
    AccountTotalsResponse,
    MismatchResponse,
    ReconciliationResponse,
)
from delivery_ledger.services.reporting import ReportingService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/accounts", response_model=list[AccountTotalsResponse])
def account_report(
    account_type: AccountType | None = None,
    actor_type: ActorType | None = None,
    actor_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    db: Session = Depends(get_db),
):
    """IN, OUT and net per account, for entries in the given window."""
    totals = ReportingService(db).account_report(
        account_type=account_type,
        actor_type=actor_type,
        actor_id=actor_id,
        start=start,
        end=end,
    )
    return [AccountTotalsResponse.from_totals(t) for t in totals]


@router.get("/reconciliation", response_model=ReconciliationResponse)
def reconciliation(db: Session = Depends(get_db)):
    mismatches = ReportingService(db).reconciliation()
    return ReconciliationResponse(
        consistent=not mismatches,
        mismatches=[MismatchResponse.from_mismatch(m) for m in mismatches],
    )
