"""Rewards core tables.

Revision ID: 20261001_01
Revises: 
Create Date: 2026-10-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261001_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TRANSACTION_TYPES = (
    "purchase",
    "commission",
    "payout",
    "credit",
    "debit",
    "points-earned",
    "points-redeemed",
    "refund",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="member"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("wallet_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("referral_code", sa.String(length=32), nullable=True),
        sa.Column("referred_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("referral_chain", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        *_timestamps(),
        sa.CheckConstraint("points_balance >= 0", name="ck_users_points_balance_non_negative"),
        sa.CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_referral_code", "users", ["referral_code"], unique=True)

    op.create_table(
        "merchants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("industry", sa.String(length=64), nullable=True),
        sa.Column(
            "linked_agent_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("boost_balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("total_boost_earned", sa.Numeric(14, 2), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("boost_balance >= 0", name="ck_merchants_boost_balance_non_negative"),
    )

    op.create_table(
        "offers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "merchant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("loyalty_points", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Enum(*TRANSACTION_TYPES, name="transaction_type"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "merchant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("merchants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("source_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("offer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("offers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("points_pool", sa.Integer(), nullable=True),
        sa.Column("payout_status", sa.Enum("pending", "completed", "rejected", name="payout_status"), nullable=True),
        sa.Column("commission_level", sa.Integer(), nullable=True),
        sa.Column("points_earned", sa.Integer(), nullable=True),
        sa.Column("points_redeemed", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_transactions_user_created", "transactions", ["user_id", "created_at"])
    op.create_index("ix_transactions_source_type", "transactions", ["source_id", "type"])

    op.create_table(
        "commission_settings",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("level1", sa.Integer(), nullable=False),
        sa.Column("level2", sa.Integer(), nullable=False),
        sa.Column("level3", sa.Integer(), nullable=False),
        sa.Column("merchant_bonus", sa.Integer(), nullable=False),
        sa.Column("points_share_pct_parent", sa.Numeric(6, 2), nullable=False),
        sa.Column("points_share_pct_buyer", sa.Numeric(6, 2), nullable=False),
        sa.Column("points_share_pct_grandparent", sa.Numeric(6, 2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "loyalty_slab_configs",
        sa.Column("category_id", sa.String(length=64), primary_key=True),
        sa.Column("slabs", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "boost_settings",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("boost_enabled", sa.Boolean(), nullable=False),
        sa.Column("boost_percentage", sa.Numeric(6, 2), nullable=False),
        sa.Column("apply_on", sa.String(length=16), nullable=False),
        sa.Column("min_redemption_threshold", sa.Numeric(14, 2), nullable=False),
        sa.Column("auto_approve_threshold", sa.Numeric(14, 2), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "boost_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "merchant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("type", sa.Enum("CREDIT", "WITHDRAWAL", name="boost_transaction_type"), nullable=False),
        sa.Column("source_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_boost_transactions_merchant_id", "boost_transactions", ["merchant_id"])

    op.create_table(
        "boost_withdrawals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "merchant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "COMPLETED", "REJECTED", name="boost_withdrawal_status"),
            nullable=False,
        ),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_boost_withdrawals_merchant_id", "boost_withdrawals", ["merchant_id"])

    op.create_table(
        "payment_orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("merchant_order_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "merchant_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("merchants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_paise", sa.Integer(), nullable=False),
        sa.Column("offer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("offers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("status", sa.Enum("PENDING", "SUCCESS", "FAILED", name="payment_order_status"), nullable=False),
        sa.Column("gateway_order_id", sa.String(length=128), nullable=True),
        sa.Column("error_code", sa.String(length=128), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payment_orders_merchant_order_id", "payment_orders", ["merchant_order_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_payment_orders_merchant_order_id", table_name="payment_orders")
    op.drop_table("payment_orders")
    op.drop_index("ix_boost_withdrawals_merchant_id", table_name="boost_withdrawals")
    op.drop_table("boost_withdrawals")
    op.drop_index("ix_boost_transactions_merchant_id", table_name="boost_transactions")
    op.drop_table("boost_transactions")
    op.drop_table("boost_settings")
    op.drop_table("loyalty_slab_configs")
    op.drop_table("commission_settings")
    op.drop_index("ix_transactions_source_type", table_name="transactions")
    op.drop_index("ix_transactions_user_created", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("offers")
    op.drop_table("merchants")
    op.drop_index("ix_users_referral_code", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_name in (
        "payment_order_status",
        "boost_withdrawal_status",
        "boost_transaction_type",
        "payout_status",
        "transaction_type",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
