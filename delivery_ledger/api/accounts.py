"""
Account API endpoints.

Read-only views of one account: its balance and its entries.
Cash and wish accounts are addressed by the cashbox name.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from delivery_ledger.exceptions import LedgerError
from delivery_ledger.models.base import get_db
from delivery_ledger.models.enums import AccountType
from delivery_ledger.schemas.ledger import BalanceResponse, LedgerEntryResponse
from delivery_ledger.services.account_store import AccountStore
from delivery_ledger.services.reporting import ReportingService

router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.get("/{account_type}/{account_id}/balance", response_model=BalanceResponse)
def get_balance(
    account_type: AccountType,
    account_id: str,
    db: Session = Depends(get_db),
):
    store = AccountStore(db)
    try:
        balance = store.get_balance(account_type, account_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return BalanceResponse(
        account_type=account_type,
        account_id=store.account_key(account_type, account_id),
        balance_usd=balance.usd,
        balance_lbp=balance.lbp,
    )


@router.get(
    "/{account_type}/{account_id}/entries",
    response_model=list[LedgerEntryResponse],
)
def get_entries(
    account_type: AccountType,
    account_id: str,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """All entries for an account, newest first."""
    store = AccountStore(db)
    try:
        store.get_account(account_type, account_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return ReportingService(db, store=store).timeline(
        limit=limit,
        offset=offset,
        account_type=account_type,
        account_id=store.account_key(account_type, account_id),
    )
