from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.api.dependencies.session import require_session_user
from credits_api.db.session import get_session
from credits_api.schemas.orders import (
    MakerJobResponse,
    MakerJobsResponse,
    MakerStatusUpdateRequest,
    MakerStatusUpdateResponse,
)
from credits_api.services.orders import FulfillmentService


router = APIRouter(prefix="/maker/orders", tags=["Maker"])


@router.get("", response_model=MakerJobsResponse)
async def list_jobs(
    maker_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> MakerJobsResponse:
    jobs = await FulfillmentService(db).list_maker_jobs(maker_id)
    return MakerJobsResponse(jobs=[MakerJobResponse.of(job) for job in jobs])


@router.post("/{order_id}/status", response_model=MakerStatusUpdateResponse)
async def update_order_status(
    order_id: UUID,
    payload: MakerStatusUpdateRequest,
    maker_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> MakerStatusUpdateResponse:
    order = await FulfillmentService(db).maker_update_order_status(
        maker_id=maker_id,
        order_id=order_id,
        new_status=payload.new_status,
        notes=payload.notes,
        tracking_number=payload.tracking_number,
        carrier=payload.carrier,
    )
    return MakerStatusUpdateResponse(status=order.maker_order.status, order_status=order.status)
