from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, JSON, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from credits_api.core.clock import utcnow
from credits_api.db.base import Base


class OrderStatusEnum(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    ASSIGNED = "assigned"
    IN_PRODUCTION = "in_production"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethodEnum(str, Enum):
    CREDITS = "credits"
    CARD = "card"
    E_TRANSFER = "e_transfer"


class MakerOrderStatusEnum(str, Enum):
    ASSIGNED = "assigned"
    IN_PRODUCTION = "in_production"
    SHIPPED = "shipped"
    COMPLETED = "completed"


def _enum_values(enum: type[Enum]) -> list[str]:
    return [member.value for member in enum]


class Order(Base):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String, nullable=False, unique=True)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    status = Column(
        SqlEnum(OrderStatusEnum, name="order_status_enum", values_callable=_enum_values),
        nullable=False,
        default=OrderStatusEnum.PENDING_PAYMENT,
        server_default=OrderStatusEnum.PENDING_PAYMENT.value,
    )
    total_cents = Column(Integer, nullable=False)
    payment_method = Column(
        SqlEnum(PaymentMethodEnum, name="payment_method_enum", values_callable=_enum_values),
        nullable=False,
    )
    shipping_address = Column(JSON, nullable=True)
    status_history = Column(JSON, nullable=False, default=list)
    payment_reference = Column(String(128), nullable=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    maker_order = relationship("MakerOrder", back_populates="order", uselist=False)

    __mapper_args__ = {"version_id_col": version}


class MakerOrder(Base):
    """Assignment of an order to the maker who prints and ships it."""

    __tablename__ = "maker_orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    maker_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    status = Column(
        SqlEnum(MakerOrderStatusEnum, name="maker_order_status_enum", values_callable=_enum_values),
        nullable=False,
        default=MakerOrderStatusEnum.ASSIGNED,
        server_default=MakerOrderStatusEnum.ASSIGNED.value,
    )
    tracking_info = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    order = relationship("Order", back_populates="maker_order")

    __mapper_args__ = {"version_id_col": version}
