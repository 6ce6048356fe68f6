"""
Counterparty payment endpoints: clients, drivers and third parties.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from delivery_ledger.exceptions import LedgerError
from delivery_ledger.models.base import get_db
from delivery_ledger.schemas.ledger import PostingResponse
from delivery_ledger.schemas.order import (
    ClientPaymentRequest,
    DriverMovementRequest,
    ThirdPartyPayableRequest,
)
from delivery_ledger.services.ledger_engine import LedgerEngine

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/client", response_model=PostingResponse, status_code=201)
def client_payment(request: ClientPaymentRequest, db: Session = Depends(get_db)):
    """Take a client payment into cash or wish."""
    engine = LedgerEngine(db)
    try:
        result = engine.record_client_payment(
            request.order_id,
            request.client_id,
            request.amount_usd,
            request.amount_lbp,
            request.method,
            request.actor_id,
            description=request.description,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/driver", response_model=PostingResponse, status_code=201)
def driver_movement(request: DriverMovementRequest, db: Session = Depends(get_db)):
    """Advance money to a driver, take it back, or settle it as earnings."""
    engine = LedgerEngine(db)
    try:
        result = engine.record_driver_payout(
            request.order_id,
            request.driver_id,
            request.amount_usd,
            request.amount_lbp,
            request.actor_id,
            movement=request.movement,
            account_type=request.account_type,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/third-party", response_model=PostingResponse, status_code=201)
def third_party_payable(
    request: ThirdPartyPayableRequest, db: Session = Depends(get_db)
):
    engine = LedgerEngine(db)
    try:
        result = engine.record_third_party_payable(
            request.order_id,
            request.third_party_id,
            request.amount_usd,
            request.amount_lbp,
            request.actor_id,
        )
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))
