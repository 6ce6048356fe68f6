"""initial ledger schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Enum types are created once up front; several tables share them.
account_type_enum = postgresql.ENUM(
    "CASH", "WISH", "CLIENT", "DRIVER", "THIRD_PARTY",
    name="account_type_enum", create_type=False,
)
entry_type_enum = postgresql.ENUM(
    "CAPITAL_ADD", "CAPITAL_EDIT", "INCOME", "EXPENSE", "CASH_IN", "CASH_OUT",
    "CLIENT_PAYMENT", "DRIVER_ADVANCE", "DRIVER_RETURN", "DRIVER_PAYOUT",
    "THIRD_PARTY_PAYABLE", "THIRD_PARTY_PAYOUT", "ORDER_CASH_IN", "ORDER_CASH_OUT",
    name="entry_type_enum", create_type=False,
)
direction_enum = postgresql.ENUM(
    "IN", "OUT", name="direction_enum", create_type=False,
)
actor_type_enum = postgresql.ENUM(
    "CASHBOX", "CLIENT", "DRIVER", "THIRD_PARTY", "ORDER",
    name="actor_type_enum", create_type=False,
)
transaction_type_enum = postgresql.ENUM(
    "CAPITAL", "INCOME", "EXPENSE", "TRANSFER", "CLIENT_PAYMENT",
    "DRIVER_MOVEMENT", "THIRD_PARTY_PAYABLE", "ORDER_EFFECT", "CASH_OUT",
    name="transaction_type_enum", create_type=False,
)
order_type_enum = postgresql.ENUM(
    "ECOMMERCE", "INSTANT", "GO_TO_MARKET",
    name="order_type_enum", create_type=False,
)
deliver_method_enum = postgresql.ENUM(
    "IN_HOUSE", "THIRD_PARTY", name="deliver_method_enum", create_type=False,
)
order_status_enum = postgresql.ENUM(
    "NEW", "ASSIGNED", "PICKED_UP", "IN_TRANSIT", "DELIVERED", "COMPLETED",
    "CANCELLED", "RETURNED",
    name="order_status_enum", create_type=False,
)
payment_status_enum = postgresql.ENUM(
    "UNPAID", "PARTIAL", "PAID", "PREPAID", "REFUNDED",
    name="payment_status_enum", create_type=False,
)

ENUM_TYPES = (
    account_type_enum,
    entry_type_enum,
    direction_enum,
    actor_type_enum,
    transaction_type_enum,
    order_type_enum,
    deliver_method_enum,
    order_status_enum,
    payment_status_enum,
)


def _usd(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=False)


def _lbp(name: str) -> sa.Column:
    return sa.Column(name, sa.BigInteger(), nullable=False)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "cashboxes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        _usd("cash_balance_usd"),
        _lbp("cash_balance_lbp"),
        _usd("wish_balance_usd"),
        _lbp("wish_balance_lbp"),
        _usd("initial_capital_usd"),
        _lbp("initial_capital_lbp"),
        sa.Column("capital_set_at", sa.DateTime(), nullable=True),
        sa.Column("capital_set_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_type", account_type_enum, nullable=False),
        sa.Column("account_key", sa.String(100), nullable=False),
        _usd("balance_usd"),
        _lbp("balance_lbp"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "account_type", "account_key", name="uq_account_identity"
        ),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_ref", sa.String(50), nullable=False, unique=True),
        sa.Column("type", order_type_enum, nullable=False),
        sa.Column("deliver_method", deliver_method_enum, nullable=False),
        sa.Column("status", order_status_enum, nullable=False),
        sa.Column("payment_status", payment_status_enum, nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True, index=True),
        sa.Column("driver_id", sa.Integer(), nullable=True, index=True),
        sa.Column("third_party_id", sa.String(100), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False),
        _usd("total_usd"),
        _lbp("total_lbp"),
        _usd("delivery_fee_usd"),
        _lbp("delivery_fee_lbp"),
        _usd("driver_fee_usd"),
        _lbp("driver_fee_lbp"),
        _usd("third_party_fee_usd"),
        _lbp("third_party_fee_lbp"),
        sa.Column("cashbox_applied_on_create", sa.Boolean(), nullable=False),
        sa.Column("cashbox_applied_on_delivery", sa.Boolean(), nullable=False),
        sa.Column("cashbox_applied_on_paid", sa.Boolean(), nullable=False),
        sa.Column("cashbox_history_moved", sa.Boolean(), nullable=False),
        sa.Column("accounting_cashed", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cashed_at", sa.DateTime(), nullable=True),
        sa.Column("moved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.Uuid(), nullable=False, unique=True),
        sa.Column("tx_type", transaction_type_enum, nullable=False),
        sa.Column(
            "order_id", sa.Integer(), sa.ForeignKey("orders.id"),
            nullable=True, index=True,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"),
            nullable=False, index=True,
        ),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"),
            nullable=False, index=True,
        ),
        sa.Column("account_type", account_type_enum, nullable=False, index=True),
        sa.Column("account_key", sa.String(100), nullable=False),
        sa.Column("entry_type", entry_type_enum, nullable=False, index=True),
        sa.Column("direction", direction_enum, nullable=False),
        _usd("amount_usd"),
        _lbp("amount_lbp"),
        sa.Column("actor_type", actor_type_enum, nullable=False),
        sa.Column("actor_id", sa.String(100), nullable=True),
        sa.Column(
            "order_id", sa.Integer(), sa.ForeignKey("orders.id"),
            nullable=True, index=True,
        ),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("subcategory", sa.String(100), nullable=True),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, index=True),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True, index=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("ledger_entries")
    op.drop_table("transactions")
    op.drop_table("orders")
    op.drop_table("accounts")
    op.drop_table("cashboxes")

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
