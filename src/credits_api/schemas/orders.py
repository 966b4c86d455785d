"""Request and response models for order fulfillment endpoints."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from credits_api.models.order import MakerOrder, MakerOrderStatusEnum, Order, OrderStatusEnum, PaymentMethodEnum


class CreateOrderRequest(BaseModel):
    total_cents: int = Field(..., strict=True, gt=0)
    payment_method: PaymentMethodEnum
    shipping_address: Optional[dict[str, Any]] = None


class ConfirmPaymentRequest(BaseModel):
    reference: Optional[str] = Field(None, max_length=128)


class AssignMakerRequest(BaseModel):
    maker_id: UUID


class ConfirmDeliveryRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class CancelOrderRequest(BaseModel):
    reason: str = Field(..., max_length=2000)
    refund_credits: int = Field(0, strict=True, ge=0)


class MakerStatusUpdateRequest(BaseModel):
    new_status: MakerOrderStatusEnum
    notes: Optional[str] = Field(None, max_length=2000)
    tracking_number: Optional[str] = Field(None, max_length=128)
    carrier: Optional[str] = Field(None, max_length=128)


class MakerOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    maker_id: UUID
    status: MakerOrderStatusEnum
    tracking_info: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    assigned_at: datetime


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: UUID
    status: OrderStatusEnum
    total_cents: int
    payment_method: PaymentMethodEnum
    shipping_address: Optional[dict[str, Any]] = None
    status_history: list[dict[str, Any]] = Field(default_factory=list)
    payment_reference: Optional[str] = None
    payment_confirmed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    maker_order: Optional[MakerOrderResponse] = None
    created_at: datetime


class OrderEnvelope(BaseModel):
    success: Literal[True] = True
    order: OrderResponse

    @classmethod
    def of(cls, order: Order) -> "OrderEnvelope":
        return cls(order=OrderResponse.model_validate(order))


class PayWithCreditsResponse(OrderEnvelope):
    new_balance: int
    replayed: bool = False


class CancelOrderResponse(OrderEnvelope):
    refunded_credits: int
    new_balance: Optional[int] = None


class MakerStatusUpdateResponse(BaseModel):
    success: Literal[True] = True
    status: MakerOrderStatusEnum
    order_status: OrderStatusEnum


class MakerJobResponse(BaseModel):
    order_id: UUID
    order_number: str
    status: MakerOrderStatusEnum
    order_status: OrderStatusEnum
    total_cents: int
    shipping_address: Optional[dict[str, Any]] = None
    tracking_info: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    assigned_at: datetime

    @classmethod
    def of(cls, maker_order: MakerOrder) -> "MakerJobResponse":
        order = maker_order.order
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            status=maker_order.status,
            order_status=order.status,
            total_cents=order.total_cents,
            shipping_address=order.shipping_address,
            tracking_info=maker_order.tracking_info,
            notes=maker_order.notes,
            assigned_at=maker_order.assigned_at,
        )


class MakerJobsResponse(BaseModel):
    success: Literal[True] = True
    jobs: list[MakerJobResponse]
