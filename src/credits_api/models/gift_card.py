"""Single-use gift card codes."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Enum as SqlEnum, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from credits_api.core.clock import utcnow
from credits_api.db.base import Base


class GiftCardStatus(str, Enum):
    ISSUED = "issued"
    REDEEMED = "redeemed"
    EXPIRED = "expired"
    VOID = "void"


class GiftCard(Base):
    """Gift card issued for a fixed credit value; redeemable at most once."""

    __tablename__ = "gift_cards"
    __table_args__ = (
        CheckConstraint("credits_value > 0", name="ck_gift_cards_credits_value_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(32), nullable=False, unique=True, index=True)
    credits_value = Column(BigInteger, nullable=False)
    price_cents = Column(Integer, nullable=False, default=0, server_default="0")
    status = Column(
        SqlEnum(
            GiftCardStatus,
            name="gift_card_status_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=GiftCardStatus.ISSUED,
        server_default=GiftCardStatus.ISSUED.value,
    )
    purchased_by = Column(UUID(as_uuid=True), nullable=True)
    redeemed_by = Column(UUID(as_uuid=True), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
