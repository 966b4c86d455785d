"""Customer checkout and admin order management endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.api.dependencies.session import require_admin, require_session_user
from credits_api.db.session import get_session
from credits_api.schemas.orders import (
    AssignMakerRequest,
    CancelOrderRequest,
    CancelOrderResponse,
    ConfirmDeliveryRequest,
    ConfirmPaymentRequest,
    CreateOrderRequest,
    OrderEnvelope,
    OrderResponse,
    PayWithCreditsResponse,
)
from credits_api.services.errors import OrderNotFound
from credits_api.services.orders import FulfillmentService


router = APIRouter(prefix="/orders", tags=["Orders"])
admin_router = APIRouter(prefix="/admin/orders", tags=["Admin"])


@router.post("", response_model=OrderEnvelope, status_code=201)
async def create_order(
    payload: CreateOrderRequest,
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> OrderEnvelope:
    order = await FulfillmentService(db).create_order(
        user_id=user_id,
        total_cents=payload.total_cents,
        payment_method=payload.payment_method,
        shipping_address=payload.shipping_address,
    )
    return OrderEnvelope.of(order)


@router.get("/{order_id}", response_model=OrderEnvelope)
async def get_order(
    order_id: UUID,
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> OrderEnvelope:
    order = await FulfillmentService(db).get_order(order_id)
    if order.user_id != user_id:
        raise OrderNotFound("Order not found", order_id=order_id)
    return OrderEnvelope.of(order)


@router.post("/{order_id}/pay-with-credits", response_model=PayWithCreditsResponse)
async def pay_with_credits(
    order_id: UUID,
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> PayWithCreditsResponse:
    result = await FulfillmentService(db).pay_with_credits(order_id=order_id, user_id=user_id)
    return PayWithCreditsResponse(
        order=OrderResponse.model_validate(result.order),
        new_balance=result.new_balance,
        replayed=result.replayed,
    )


@admin_router.post("/{order_id}/confirm-payment", response_model=OrderEnvelope)
async def confirm_payment(
    order_id: UUID,
    payload: ConfirmPaymentRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> OrderEnvelope:
    order = await FulfillmentService(db).confirm_payment(
        order_id=order_id,
        admin_id=admin_id,
        reference=payload.reference,
    )
    return OrderEnvelope.of(order)


@admin_router.post("/{order_id}/assign", response_model=OrderEnvelope)
async def assign_maker(
    order_id: UUID,
    payload: AssignMakerRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> OrderEnvelope:
    order = await FulfillmentService(db).assign_maker(
        order_id=order_id,
        maker_id=payload.maker_id,
        admin_id=admin_id,
    )
    return OrderEnvelope.of(order)


@admin_router.post("/{order_id}/confirm-delivery", response_model=OrderEnvelope)
async def confirm_delivery(
    order_id: UUID,
    payload: ConfirmDeliveryRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> OrderEnvelope:
    order = await FulfillmentService(db).confirm_delivery(
        order_id=order_id,
        admin_id=admin_id,
        notes=payload.notes,
    )
    return OrderEnvelope.of(order)


@admin_router.post("/{order_id}/cancel", response_model=CancelOrderResponse)
async def cancel_order(
    order_id: UUID,
    payload: CancelOrderRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> CancelOrderResponse:
    result = await FulfillmentService(db).cancel_order(
        order_id=order_id,
        admin_id=admin_id,
        reason=payload.reason,
        refund_credits=payload.refund_credits,
    )
    return CancelOrderResponse(
        order=OrderResponse.model_validate(result.order),
        refunded_credits=result.refunded_credits,
        new_balance=result.new_balance,
    )
