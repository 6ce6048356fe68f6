"""
Order API endpoints.

Status and payment-status changes go through the OrderService,
which fires the matching ledger effect in the same transaction.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from delivery_ledger.exceptions import LedgerError
from delivery_ledger.models.base import get_db
from delivery_ledger.models.enums import OrderStatus
from delivery_ledger.schemas.ledger import PostingResponse
from delivery_ledger.schemas.order import (
    EffectResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)
from delivery_ledger.services.ledger_engine import LedgerEngine
from delivery_ledger.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderResponse, status_code=201)
def create_order(request: OrderCreate, db: Session = Depends(get_db)):
    """Create an order; prepaid and go-to-market orders are paid for at once."""
    service = OrderService(db)
    try:
        order = service.create_order(request)
        db.commit()
        return order
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=list[OrderResponse])
def list_orders(
    status: OrderStatus | None = None,
    client_id: int | None = None,
    driver_id: int | None = None,
    include_history: bool = True,
    db: Session = Depends(get_db),
):
    return OrderService(db).list_orders(
        status=status,
        client_id=client_id,
        driver_id=driver_id,
        include_history=include_history,
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db)):
    service = OrderService(db)
    try:
        return service.get_order(order_id)
    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{order_id}/status", response_model=OrderResponse)
def change_status(
    order_id: int,
    request: OrderStatusUpdate,
    db: Session = Depends(get_db),
):
    service = OrderService(db)
    try:
        order = service.change_status(
            order_id, request.status, request.actor_id, driver_id=request.driver_id
        )
        db.commit()
        return order
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{order_id}/payment-status", response_model=OrderResponse)
def change_payment_status(
    order_id: int,
    request: PaymentStatusUpdate,
    db: Session = Depends(get_db),
):
    service = OrderService(db)
    try:
        order = service.change_payment_status(
            order_id, request.payment_status, request.actor_id
        )
        db.commit()
        return order
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/cashout", response_model=PostingResponse)
def cash_out(order_id: int, actor_id: int, db: Session = Depends(get_db)):
    """Settle everything open on the order and move it to history."""
    engine = LedgerEngine(db)
    try:
        result = engine.cash_out(order_id, actor_id)
        response = PostingResponse.from_result(result)
        db.commit()
        return response
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{order_id}/history", response_model=EffectResponse)
def move_to_history(order_id: int, actor_id: int, db: Session = Depends(get_db)):
    """
    Move a cashed-out, cancelled or returned order to history.

    Repeating the call is not an error; the response reports
    applied=false.
    """
    service = OrderService(db)
    try:
        effect = service.move_to_history(order_id, actor_id)
        db.commit()
    except LedgerError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))

    transaction = effect.result.transaction if effect.result else None
    return EffectResponse(
        trigger=effect.trigger.value,
        applied=effect.applied,
        reason=effect.reason,
        transaction_id=transaction.id if transaction is not None else None,
    )
