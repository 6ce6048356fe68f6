"""
Pydantic schemas for orders and counterparty payments.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from delivery_ledger.models.enums import (
    AccountType,
    DeliverMethod,
    DriverMovement,
    OrderStatus,
    OrderType,
    PaymentMethod,
    PaymentStatus,
)


# --- Request Schemas ---

class OrderCreate(BaseModel):
    order_ref: str | None = Field(default=None, min_length=1, max_length=50)
    type: OrderType = OrderType.ECOMMERCE
    deliver_method: DeliverMethod = DeliverMethod.IN_HOUSE
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    client_id: int | None = None
    driver_id: int | None = None
    third_party_id: str | None = Field(default=None, max_length=100)
    customer_name: str = Field(default="", max_length=255)
    customer_phone: str = Field(default="", max_length=50)
    notes: str = ""

    total_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    total_lbp: int = Field(default=0, ge=0)
    delivery_fee_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    delivery_fee_lbp: int = Field(default=0, ge=0)
    driver_fee_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    driver_fee_lbp: int = Field(default=0, ge=0)
    third_party_fee_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    third_party_fee_lbp: int = Field(default=0, ge=0)

    actor_id: int

    @field_validator("payment_status")
    @classmethod
    def must_start_open_or_settled(cls, v: PaymentStatus) -> PaymentStatus:
        if v not in (PaymentStatus.UNPAID, PaymentStatus.PREPAID, PaymentStatus.PAID):
            raise ValueError("a new order must be unpaid, prepaid or paid")
        return v


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    driver_id: int | None = None
    actor_id: int


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    actor_id: int


class ClientPaymentRequest(BaseModel):
    order_id: int | None = None
    client_id: int | None = None
    amount_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    amount_lbp: int = Field(default=0, ge=0)
    method: PaymentMethod = PaymentMethod.CASH
    description: str = Field(default="", max_length=255)
    actor_id: int


class DriverMovementRequest(BaseModel):
    order_id: int | None = None
    driver_id: int | None = None
    amount_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    amount_lbp: int = Field(default=0, ge=0)
    movement: DriverMovement = DriverMovement.PAYOUT
    account_type: AccountType = AccountType.CASH
    actor_id: int


class ThirdPartyPayableRequest(BaseModel):
    order_id: int | None = None
    third_party_id: str | None = Field(default=None, max_length=100)
    amount_usd: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    amount_lbp: int = Field(default=0, ge=0)
    actor_id: int


# --- Response Schemas ---

class OrderResponse(BaseModel):
    id: int
    order_ref: str
    type: OrderType
    deliver_method: DeliverMethod
    status: OrderStatus
    payment_status: PaymentStatus
    client_id: int | None
    driver_id: int | None
    third_party_id: str | None
    customer_name: str
    customer_phone: str
    notes: str

    total_usd: Decimal
    total_lbp: int
    delivery_fee_usd: Decimal
    delivery_fee_lbp: int
    driver_fee_usd: Decimal
    driver_fee_lbp: int
    third_party_fee_usd: Decimal
    third_party_fee_lbp: int

    cashbox_applied_on_create: bool
    cashbox_applied_on_delivery: bool
    cashbox_applied_on_paid: bool
    cashbox_history_moved: bool
    accounting_cashed: bool

    created_by: int
    delivered_at: datetime | None
    completed_at: datetime | None
    cashed_at: datetime | None
    moved_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class EffectResponse(BaseModel):
    """Outcome of a lifecycle effect; applied is false for a repeat."""
    trigger: str
    applied: bool
    reason: str
    transaction_id: int | None
