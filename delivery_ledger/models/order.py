"""
Order model.

An order carries the amounts the ledger works with, the two
state machines (delivery status and payment status) and the
flags recording which ledger effects have already been applied.

The flags are monotonic: once set, an attempt to clear them
raises, so a ledger effect can never be re-armed.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Numeric, BigInteger, Integer, Boolean, Text,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from delivery_ledger.models.base import Base
from delivery_ledger.models.enums import (
    DeliverMethod,
    LifecycleTrigger,
    OrderStatus,
    OrderType,
    PaymentStatus,
)
from delivery_ledger.money import Money


TERMINAL_STATUSES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})

_ESCAPES = {OrderStatus.CANCELLED, OrderStatus.RETURNED}

# Valid status transitions, the source of truth for the delivery state machine
VALID_STATUS_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.NEW: {OrderStatus.ASSIGNED} | _ESCAPES,
    OrderStatus.ASSIGNED: {OrderStatus.PICKED_UP} | _ESCAPES,
    OrderStatus.PICKED_UP: {OrderStatus.IN_TRANSIT} | _ESCAPES,
    OrderStatus.IN_TRANSIT: {OrderStatus.DELIVERED} | _ESCAPES,
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED} | _ESCAPES,
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

VALID_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.UNPAID: {
        PaymentStatus.PARTIAL,
        PaymentStatus.PAID,
        PaymentStatus.PREPAID,
    },
    PaymentStatus.PARTIAL: {PaymentStatus.PAID, PaymentStatus.REFUNDED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.PREPAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

# In-house orders need a driver before they can leave the warehouse
STATUSES_REQUIRING_DRIVER = frozenset({
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
})

LIFECYCLE_FLAGS: dict[LifecycleTrigger, str] = {
    LifecycleTrigger.CREATE: "cashbox_applied_on_create",
    LifecycleTrigger.DELIVERY: "cashbox_applied_on_delivery",
    LifecycleTrigger.PAID: "cashbox_applied_on_paid",
    LifecycleTrigger.HISTORY: "cashbox_history_moved",
}


def _usd_column():
    return mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))


def _lbp_column():
    return mapped_column(BigInteger, nullable=False, default=0)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_ref: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    type: Mapped[OrderType] = mapped_column(
        SAEnum(OrderType, name="order_type_enum", create_constraint=True),
        nullable=False,
        default=OrderType.ECOMMERCE,
    )
    deliver_method: Mapped[DeliverMethod] = mapped_column(
        SAEnum(DeliverMethod, name="deliver_method_enum", create_constraint=True),
        nullable=False,
        default=DeliverMethod.IN_HOUSE,
    )
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, name="order_status_enum", create_constraint=True),
        nullable=False,
        default=OrderStatus.NEW,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="payment_status_enum", create_constraint=True),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    client_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    driver_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    third_party_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    total_usd: Mapped[Decimal] = _usd_column()
    total_lbp: Mapped[int] = _lbp_column()
    delivery_fee_usd: Mapped[Decimal] = _usd_column()
    delivery_fee_lbp: Mapped[int] = _lbp_column()
    driver_fee_usd: Mapped[Decimal] = _usd_column()
    driver_fee_lbp: Mapped[int] = _lbp_column()
    third_party_fee_usd: Mapped[Decimal] = _usd_column()
    third_party_fee_lbp: Mapped[int] = _lbp_column()

    # Ledger effect guards
    cashbox_applied_on_create: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    cashbox_applied_on_delivery: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    cashbox_applied_on_paid: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    cashbox_history_moved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    accounting_cashed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cashed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    moved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @validates(
        "cashbox_applied_on_create",
        "cashbox_applied_on_delivery",
        "cashbox_applied_on_paid",
        "cashbox_history_moved",
        "accounting_cashed",
    )
    def _validate_flag(self, key, value):
        if getattr(self, key) and not value:
            raise ValueError(f"{key} cannot be reset once applied")
        return value

    # --- Amounts ---

    @property
    def total(self) -> Money:
        return Money(Decimal(self.total_usd), int(self.total_lbp))

    @property
    def delivery_fee(self) -> Money:
        return Money(Decimal(self.delivery_fee_usd), int(self.delivery_fee_lbp))

    @property
    def driver_fee(self) -> Money:
        """Driver's fee, falling back to the delivery fee when none is set."""
        fee = Money(Decimal(self.driver_fee_usd), int(self.driver_fee_lbp))
        return fee if not fee.is_zero() else self.delivery_fee

    @property
    def third_party_fee(self) -> Money:
        return Money(Decimal(self.third_party_fee_usd), int(self.third_party_fee_lbp))

    # --- State machine ---

    def can_transition_to(self, new_status: OrderStatus) -> bool:
        return new_status in VALID_STATUS_TRANSITIONS.get(self.status, set())

    def can_transition_payment_to(self, new_status: PaymentStatus) -> bool:
        return new_status in VALID_PAYMENT_TRANSITIONS.get(
            self.payment_status, set()
        )

    def is_applied(self, trigger: LifecycleTrigger) -> bool:
        return bool(getattr(self, LIFECYCLE_FLAGS[trigger]))

    def mark_applied(self, trigger: LifecycleTrigger) -> None:
        setattr(self, LIFECYCLE_FLAGS[trigger], True)

    @property
    def is_collected(self) -> bool:
        """Whether the order total has already been taken into the cashbox."""
        return bool(self.cashbox_applied_on_delivery or self.cashbox_applied_on_paid)

    @property
    def pays_out_on_create(self) -> bool:
        """
        Orders the company pays for up front.

        Prepaid e-commerce/instant orders and go-to-market purchases
        take the order total out of the cashbox at intake.
        """
        if self.type == OrderType.GO_TO_MARKET:
            return True
        return (
            self.type in (OrderType.ECOMMERCE, OrderType.INSTANT)
            and self.payment_status in (PaymentStatus.PREPAID, PaymentStatus.PAID)
        )

    def __repr__(self) -> str:
        return (
            f"<Order {self.order_ref} {self.status.value}/"
            f"{self.payment_status.value}>"
        )
