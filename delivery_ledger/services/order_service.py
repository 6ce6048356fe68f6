"""
Order service: intake and the two order state machines.

Each state change:
1. Locks the order row
2. Validates the transition (and the driver rule for in-house orders)
3. Writes the new state and an audit record
4. Fires the matching ledger effect through the LedgerEngine

The effect runs in the same database transaction as the state
change, so a failed effect also undoes the state change. The
caller controls the commit.
"""

import json
import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from delivery_ledger.exceptions import (
    DuplicateOrder,
    InvalidTransition,
    OrderNotFound,
    UnknownAccount,
)
from delivery_ledger.models.audit_log import AuditLog
from delivery_ledger.models.enums import (
    DeliverMethod,
    LifecycleTrigger,
    OrderStatus,
    PaymentStatus,
)
from delivery_ledger.models.order import Order, STATUSES_REQUIRING_DRIVER
from delivery_ledger.money import Money
from delivery_ledger.schemas.order import OrderCreate
from delivery_ledger.services.ledger_engine import EffectResult, LedgerEngine

logger = logging.getLogger(__name__)

# Status changes that carry a ledger effect
STATUS_TRIGGERS = {
    OrderStatus.DELIVERED: LifecycleTrigger.DELIVERY,
    OrderStatus.CANCELLED: LifecycleTrigger.HISTORY,
    OrderStatus.RETURNED: LifecycleTrigger.HISTORY,
}


class OrderService:

    def __init__(self, db: Session, engine: LedgerEngine | None = None):
        self.db = db
        self.engine = engine or LedgerEngine(db)

    def _audit(self, event_type: str, order: Order, actor: int, **details) -> None:
        self.db.add(AuditLog(
            event_type=event_type,
            order_id=order.id,
            actor_id=actor,
            details=json.dumps(details, default=str, sort_keys=True),
        ))

    def _fire(self, order: Order, trigger: LifecycleTrigger, actor: int) -> EffectResult:
        effect = self.engine.apply_order_lifecycle_effect(order, trigger, actor)
        if not effect.applied:
            self._audit(
                "lifecycle_noop", order, actor,
                trigger=trigger.value, reason=effect.reason,
            )
            self.db.flush()
        return effect

    def _lock(self, order_id: int) -> Order:
        order = self.db.execute(
            select(Order).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()
        if not order:
            raise OrderNotFound(order_id)
        return order

    def create_order(self, request: OrderCreate) -> Order:
        """
        Take in a new order and apply its creation effect.

        Prepaid and go-to-market orders are paid for out of the
        cashbox right away.
        """
        for prefix in ("total", "delivery_fee", "driver_fee", "third_party_fee"):
            Money.non_negative(
                getattr(request, f"{prefix}_usd"), getattr(request, f"{prefix}_lbp")
            )
        if (
            request.deliver_method == DeliverMethod.THIRD_PARTY
            and not request.third_party_id
        ):
            raise UnknownAccount("Third-party orders need a third_party_id")

        order_ref = request.order_ref or f"ORD-{uuid.uuid4().hex[:10].upper()}"
        taken = self.db.execute(
            select(Order.id).where(Order.order_ref == order_ref)
        ).scalar_one_or_none()
        if taken is not None:
            raise DuplicateOrder(
                f"Order reference {order_ref} is already in use",
                details={"order_ref": order_ref, "order_id": taken},
            )

        order = Order(
            order_ref=order_ref,
            type=request.type,
            deliver_method=request.deliver_method,
            status=OrderStatus.NEW,
            payment_status=request.payment_status,
            client_id=request.client_id,
            driver_id=request.driver_id,
            third_party_id=request.third_party_id,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            notes=request.notes,
            total_usd=request.total_usd,
            total_lbp=request.total_lbp,
            delivery_fee_usd=request.delivery_fee_usd,
            delivery_fee_lbp=request.delivery_fee_lbp,
            driver_fee_usd=request.driver_fee_usd,
            driver_fee_lbp=request.driver_fee_lbp,
            third_party_fee_usd=request.third_party_fee_usd,
            third_party_fee_lbp=request.third_party_fee_lbp,
            created_by=request.actor_id,
        )
        self.db.add(order)
        self.db.flush()
        self._audit("order_created", order, request.actor_id,
                    type=order.type.value, payment_status=order.payment_status.value)
        self.db.flush()
        logger.info("Created order %s", order.order_ref)

        self._fire(order, LifecycleTrigger.CREATE, request.actor_id)
        return order

    def change_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        actor: int,
        driver_id: int | None = None,
    ) -> Order:
        order = self._lock(order_id)
        assigned_driver = driver_id if driver_id is not None else order.driver_id

        if not order.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot move order {order.order_ref} from "
                f"{order.status.value} to {new_status.value}"
            )
        if (
            order.deliver_method == DeliverMethod.IN_HOUSE
            and new_status in STATUSES_REQUIRING_DRIVER
            and assigned_driver is None
        ):
            raise InvalidTransition(
                f"Order {order.order_ref} needs a driver before it is "
                f"{new_status.value}"
            )

        order.driver_id = assigned_driver
        old_status = order.status
        order.status = new_status
        now = datetime.utcnow()
        if new_status == OrderStatus.DELIVERED:
            order.delivered_at = now
        elif new_status == OrderStatus.COMPLETED:
            order.completed_at = now

        self._audit("status_changed", order, actor,
                    old=old_status.value, new=new_status.value)
        self.db.flush()

        trigger = STATUS_TRIGGERS.get(new_status)
        if trigger is not None:
            self._fire(order, trigger, actor)
        return order

    def change_payment_status(
        self, order_id: int, new_status: PaymentStatus, actor: int
    ) -> Order:
        """
        Move the payment state machine.

        Reaching paid collects the order total, unless delivery
        already collected it. Refunds carry no automatic effect.
        """
        order = self._lock(order_id)

        if not order.can_transition_payment_to(new_status):
            raise InvalidTransition(
                f"Cannot move order {order.order_ref} payment from "
                f"{order.payment_status.value} to {new_status.value}"
            )

        old_status = order.payment_status
        order.payment_status = new_status
        self._audit("payment_status_changed", order, actor,
                    old=old_status.value, new=new_status.value)
        self.db.flush()

        if new_status == PaymentStatus.PAID:
            self._fire(order, LifecycleTrigger.PAID, actor)
        return order

    def move_to_history(self, order_id: int, actor: int) -> EffectResult:
        order = self._lock(order_id)
        return self._fire(order, LifecycleTrigger.HISTORY, actor)

    def get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if not order:
            raise OrderNotFound(order_id)
        return order

    def list_orders(
        self,
        status: OrderStatus | None = None,
        client_id: int | None = None,
        driver_id: int | None = None,
        include_history: bool = True,
    ) -> list[Order]:
        stmt = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if status is not None:
            stmt = stmt.where(Order.status == status)
        if client_id is not None:
            stmt = stmt.where(Order.client_id == client_id)
        if driver_id is not None:
            stmt = stmt.where(Order.driver_id == driver_id)
        if not include_history:
            stmt = stmt.where(Order.cashbox_history_moved.is_(False))
        return list(self.db.execute(stmt).scalars().all())
