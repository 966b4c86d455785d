from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.api.dependencies.session import require_session_user
from credits_api.db.session import get_session
from credits_api.schemas.ledger import (
    GiftCardListResponse,
    GiftCardSummary,
    RedeemGiftCardRequest,
    RedeemGiftCardResponse,
)
from credits_api.services.ledger import GiftCardService


router = APIRouter(prefix="/gift-cards", tags=["Gift cards"])


@router.post("/redeem", response_model=RedeemGiftCardResponse)
async def redeem_gift_card(
    payload: RedeemGiftCardRequest,
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> RedeemGiftCardResponse:
    result = await GiftCardService(db).redeem(payload.code, user_id)
    return RedeemGiftCardResponse(credits_value=result.credits_value, new_balance=result.new_balance)


@router.get("", response_model=GiftCardListResponse)
async def list_my_gift_cards(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> GiftCardListResponse:
    """Cards the caller bought or redeemed."""

    page = await GiftCardService(db).list_for_user(user_id, limit=limit, offset=offset)
    return GiftCardListResponse(
        gift_cards=[GiftCardSummary.model_validate(card) for card in page.gift_cards],
        total_count=page.total_count,
        limit=page.limit,
        offset=page.offset,
    )
