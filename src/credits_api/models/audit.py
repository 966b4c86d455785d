"""Immutable record of privileged operations."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, JSON, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from credits_api.core.clock import utcnow
from credits_api.db.base import Base
from credits_api.models._append_only import register_append_only


class AuditActionType(str, Enum):
    CREDIT_ADJUSTMENT = "credit_adjustment"
    ORDER_STATUS_UPDATE = "order_status_update"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    MAKER_ASSIGNMENT = "maker_assignment"
    ORDER_CANCELLATION = "order_cancellation"
    GIFT_CARD_ISSUED = "gift_card_issued"
    GIFT_CARD_VOID = "gift_card_void"
    LEDGER_TRANSACTION = "ledger_transaction"


class AuditTargetType(str, Enum):
    CREDIT_WALLET = "credit_wallet"
    ORDER = "order"
    GIFT_CARD = "gift_card"


class AuditLogEntry(Base):
    """Write-once entry: who did what to which record, with before/after snapshots."""

    __tablename__ = "admin_audit_log"
    __table_args__ = (
        Index("ix_admin_audit_log_created_at", "created_at"),
        Index("ix_admin_audit_log_target", "target_type", "target_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    admin_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    action_type = Column(String(64), nullable=False, index=True)
    target_type = Column(String(64), nullable=False)
    target_id = Column(String(128), nullable=False)
    before_state = Column(JSON, nullable=True)
    after_state = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())


register_append_only(AuditLogEntry)
