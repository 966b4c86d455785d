"""Credit wallets and the append-only transaction ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from credits_api.core.clock import utcnow
from credits_api.db.base import Base
from credits_api.models._append_only import register_append_only


class CreditTransactionType(str, Enum):
    """Ledger entry categories."""

    PURCHASE = "purchase"
    GIFT_CARD = "gift_card"
    SPEND = "spend"
    REFUND = "refund"
    BONUS = "bonus"
    REFERRAL = "referral"
    SUBSCRIPTION_CREDIT = "subscription_credit"
    CORRECTION = "correction"
    ADJUSTMENT = "adjustment"


class CreditWallet(Base):
    """Per-user stored-value balance. Only the transaction engine writes these rows."""

    __tablename__ = "credit_wallets"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_credit_wallets_user_id"),
        CheckConstraint("balance >= 0", name="ck_credit_wallets_balance_non_negative"),
        CheckConstraint(
            "balance = lifetime_earned - lifetime_spent",
            name="ck_credit_wallets_balance_matches_lifetime",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    balance = Column(BigInteger, nullable=False, default=0, server_default="0")
    lifetime_earned = Column(BigInteger, nullable=False, default=0, server_default="0")
    lifetime_spent = Column(BigInteger, nullable=False, default=0, server_default="0")
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}


class CreditTransaction(Base):
    """Immutable record of one balance change."""

    __tablename__ = "credit_transactions"
    __table_args__ = (
        UniqueConstraint("type", "reference_id", name="uq_credit_transactions_type_reference"),
        CheckConstraint("amount <> 0", name="ck_credit_transactions_amount_non_zero"),
        Index("ix_credit_transactions_user_created", "user_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    type = Column(
        SqlEnum(
            CreditTransactionType,
            name="credit_transaction_type_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    amount = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=True)
    reference_id = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())


register_append_only(CreditTransaction)
