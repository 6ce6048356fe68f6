"""
Cashbox API endpoints.

The API layer is thin: it handles HTTP concerns and delegates
every money movement to the LedgerEngine. Ledger errors are
turned into HTTP errors here, with the status code each error
carries.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from delivery_ledger.exceptions import LedgerError
from delivery_ledger.models.base import get_db
from delivery_ledger.models.enums import AccountType
from delivery_ledger.schemas.cashbox import (
    CapitalRequest,
    CashboxResponse,
    ExpenseCategoryResponse,
    ExpenseRequest,
    IncomeRequest,
    TransferRequest,
)
from delivery_ledger.schemas.ledger import LedgerEntryResponse, PostingResponse
from delivery_ledger.schemas.report import BreakdownRowResponse, CashboxReportResponse
from delivery_ledger.services.expense_categories import EXPENSE_CATEGORIES
from delivery_ledger.services.ledger_engine import LedgerEngine
from delivery_ledger.services.reporting import ReportingService

router = APIRouter(prefix="/cashbox", tags=["Cashbox"])


@router.get("", response_model=CashboxResponse)
def get_cashbox(db: Session = Depends(get_db)):
    """Current cash and wish balances and the opening capital."""
    service = ReportingService(db)
    summary = service.summary()
    return CashboxResponse.build(service.store.get_cashbox(), summary)


def _set_capital(request: CapitalRequest, db: Session, edit: bool):
    engine = LedgerEngine(db)
    try:
        result = engine.set_capital(
            request.amount_usd,
            request.amount_lbp,
            request.actor_id,
            account_type=request.account_type,
            edit=edit,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/capital", response_model=PostingResponse, status_code=201)
def add_capital(request: CapitalRequest, db: Session = Depends(get_db)):
    """Set the opening capital. Allowed once per cashbox."""
    return _set_capital(request, db, edit=False)


@router.put("/capital", response_model=PostingResponse)
def edit_capital(request: CapitalRequest, db: Session = Depends(get_db)):
    """Correct the capital; only the difference is posted."""
    return _set_capital(request, db, edit=True)


@router.post("/income", response_model=PostingResponse, status_code=201)
def record_income(request: IncomeRequest, db: Session = Depends(get_db)):
    engine = LedgerEngine(db)
    try:
        result = engine.record_income(
            request.amount_usd,
            request.amount_lbp,
            request.account_type,
            request.description,
            request.actor_id,
            order_id=request.order_id,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/expense", response_model=PostingResponse, status_code=201)
def record_expense(request: ExpenseRequest, db: Session = Depends(get_db)):
    engine = LedgerEngine(db)
    try:
        result = engine.record_expense(
            request.amount_usd,
            request.amount_lbp,
            request.account_type,
            request.category,
            request.subcategory,
            request.actor_id,
            description=request.description,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/transfer", response_model=PostingResponse, status_code=201)
def transfer(request: TransferRequest, db: Session = Depends(get_db)):
    """Move money between the cash and wish accounts."""
    engine = LedgerEngine(db)
    try:
        result = engine.transfer(
            request.amount_usd,
            request.amount_lbp,
            request.from_account,
            request.to_account,
            request.actor_id,
            description=request.description,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/timeline", response_model=list[LedgerEntryResponse])
def timeline(
    account_type: AccountType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    """Ledger entries, newest first."""
    service = ReportingService(db)
    return service.timeline(
        limit=limit, offset=offset,
        account_type=account_type, start=start, end=end,
    )


@router.get("/report", response_model=CashboxReportResponse)
def report(
    start: datetime | None = None,
    end: datetime | None = None,
    db: Session = Depends(get_db),
):
    """Cash and wish movements for a period, broken down."""
    breakdowns = ReportingService(db).cashbox_report(start=start, end=end)
    return CashboxReportResponse(**{
        field: [BreakdownRowResponse.from_row(row) for row in rows]
        for field, rows in breakdowns.items()
    })


@router.get("/expense-categories", response_model=list[ExpenseCategoryResponse])
def expense_categories():
    return [
        ExpenseCategoryResponse(category=category, subcategories=list(subcategories))
        for category, subcategories in EXPENSE_CATEGORIES.items()
    ]
