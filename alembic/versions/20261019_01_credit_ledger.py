"""Credit ledger, gift cards, orders and audit log.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


credit_transaction_type_enum = sa.Enum(
    "purchase",
    "gift_card",
    "spend",
    "refund",
    "bonus",
    "referral",
    "subscription_credit",
    "correction",
    "adjustment",
    name="credit_transaction_type_enum",
)
gift_card_status_enum = sa.Enum("issued", "redeemed", "expired", "void", name="gift_card_status_enum")
order_status_enum = sa.Enum(
    "pending_payment",
    "awaiting_payment",
    "paid",
    "assigned",
    "in_production",
    "shipped",
    "delivered",
    "cancelled",
    name="order_status_enum",
)
payment_method_enum = sa.Enum("credits", "card", "e_transfer", name="payment_method_enum")
maker_order_status_enum = sa.Enum(
    "assigned",
    "in_production",
    "shipped",
    "completed",
    name="maker_order_status_enum",
)


def upgrade() -> None:
    op.create_table(
        "credit_wallets",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("lifetime_earned", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("lifetime_spent", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_credit_wallets_user_id"),
        sa.CheckConstraint("balance >= 0", name="ck_credit_wallets_balance_non_negative"),
        sa.CheckConstraint(
            "balance = lifetime_earned - lifetime_spent",
            name="ck_credit_wallets_balance_matches_lifetime",
        ),
    )

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", credit_transaction_type_enum, nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reference_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("type", "reference_id", name="uq_credit_transactions_type_reference"),
        sa.CheckConstraint("amount <> 0", name="ck_credit_transactions_amount_non_zero"),
    )
    op.create_index("ix_credit_transactions_user_created", "credit_transactions", ["user_id", "created_at"])

    op.create_table(
        "gift_cards",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("credits_value", sa.BigInteger(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", gift_card_status_enum, nullable=False, server_default="issued"),
        sa.Column("purchased_by", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("redeemed_by", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("credits_value > 0", name="ck_gift_cards_credits_value_positive"),
    )
    op.create_index("ix_gift_cards_code", "gift_cards", ["code"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order_number", sa.String(), nullable=False, unique=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", order_status_enum, nullable=False, server_default="pending_payment"),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", payment_method_enum, nullable=False),
        sa.Column("shipping_address", sa.JSON(), nullable=True),
        sa.Column("status_history", sa.JSON(), nullable=False),
        sa.Column("payment_reference", sa.String(length=128), nullable=True),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])

    op.create_table(
        "maker_orders",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("maker_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", maker_order_status_enum, nullable=False, server_default="assigned"),
        sa.Column("tracking_info", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_maker_orders_maker_id", "maker_orders", ["maker_id"])

    op.create_table(
        "admin_audit_log",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("admin_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=False),
        sa.Column("target_id", sa.String(length=128), nullable=False),
        sa.Column("before_state", sa.JSON(), nullable=True),
        sa.Column("after_state", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_admin_audit_log_admin_id", "admin_audit_log", ["admin_id"])
    op.create_index("ix_admin_audit_log_action_type", "admin_audit_log", ["action_type"])
    op.create_index("ix_admin_audit_log_created_at", "admin_audit_log", ["created_at"])
    op.create_index("ix_admin_audit_log_target", "admin_audit_log", ["target_type", "target_id"])


def downgrade() -> None:
    op.drop_index("ix_admin_audit_log_target", table_name="admin_audit_log")
    op.drop_index("ix_admin_audit_log_created_at", table_name="admin_audit_log")
    op.drop_index("ix_admin_audit_log_action_type", table_name="admin_audit_log")
    op.drop_index("ix_admin_audit_log_admin_id", table_name="admin_audit_log")
    op.drop_table("admin_audit_log")
    op.drop_index("ix_maker_orders_maker_id", table_name="maker_orders")
    op.drop_table("maker_orders")
    op.drop_index("ix_orders_user_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_gift_cards_code", table_name="gift_cards")
    op.drop_table("gift_cards")
    op.drop_index("ix_credit_transactions_user_created", table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_table("credit_wallets")

    bind = op.get_bind()
    for enum in (
        maker_order_status_enum,
        payment_method_enum,
        order_status_enum,
        gift_card_status_enum,
        credit_transaction_type_enum,
    ):
        enum.drop(bind, checkfirst=True)
