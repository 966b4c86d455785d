"""Admin console endpoints: balance adjustments, gift cards, audit log."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.api.dependencies.session import require_admin
from credits_api.db.session import get_session
from credits_api.schemas.audit import AuditLogEntryResponse, AuditLogPageResponse
from credits_api.schemas.ledger import (
    AdminAdjustRequest,
    AdminAdjustResponse,
    AdminWalletListResponse,
    AdminWalletResponse,
    GiftCardResponse,
    IssueGiftCardRequest,
    TransactionResponse,
    VoidGiftCardRequest,
    WalletResponse,
    WalletVerificationResponse,
)
from credits_api.schemas.snapshots import WalletSnapshot
from credits_api.services.audit import AuditLogService
from credits_api.services.ledger import AdminAdjustmentService, GiftCardService, TransactionEngine


router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/credits/adjust", response_model=AdminAdjustResponse)
async def adjust_credits(
    payload: AdminAdjustRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminAdjustResponse:
    result = await AdminAdjustmentService(db).adjust(
        target_user_id=payload.user_id,
        amount=payload.amount,
        reason=payload.reason,
        adjustment_type=payload.type,
        acting_admin_id=admin_id,
    )
    return AdminAdjustResponse(
        new_balance=result.new_balance,
        transaction_id=result.transaction.id,
        audit_id=result.audit_entry.id,
    )


@router.get("/wallets", response_model=AdminWalletListResponse)
async def list_wallets(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    _: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminWalletListResponse:
    page = await TransactionEngine(db).list_wallets(limit=limit, offset=offset)
    return AdminWalletListResponse(
        wallets=[WalletResponse.model_validate(wallet) for wallet in page.wallets],
        total_count=page.total_count,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/wallets/{user_id}", response_model=AdminWalletResponse)
async def inspect_wallet(
    user_id: UUID,
    _: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AdminWalletResponse:
    """Wallet state, a fresh invariant check and the latest history page."""

    engine = TransactionEngine(db)
    verification = await engine.verify_wallet(user_id)
    wallet = await engine.get_wallet(user_id)
    page = await engine.list_transactions(user_id, limit=20)
    return AdminWalletResponse(
        wallet=WalletResponse(**WalletSnapshot.of(wallet, user_id=user_id).model_dump()),
        verification=WalletVerificationResponse.model_validate(verification),
        recent_transactions=[TransactionResponse.model_validate(entry) for entry in page.entries],
    )


@router.get("/audit-log", response_model=AuditLogPageResponse)
async def list_audit_log(
    action_type: Optional[str] = Query(None),
    target_type: Optional[str] = Query(None),
    admin_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> AuditLogPageResponse:
    page = await AuditLogService(db).list_entries(
        action_type=action_type,
        target_type=target_type,
        admin_id=admin_id,
        search=search,
        limit=limit,
        offset=offset,
    )
    return AuditLogPageResponse(
        entries=[AuditLogEntryResponse.model_validate(entry) for entry in page.entries],
        total_count=page.total_count,
        limit=page.limit,
        offset=page.offset,
    )


@router.post("/gift-cards", response_model=GiftCardResponse, status_code=201)
async def issue_gift_card(
    payload: IssueGiftCardRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> GiftCardResponse:
    card = await GiftCardService(db).issue(
        credits_value=payload.credits_value,
        price_cents=payload.price_cents,
        purchased_by=payload.purchased_by,
        expires_at=payload.expires_at,
        issued_by_admin=admin_id,
    )
    return GiftCardResponse.model_validate(card)


@router.post("/gift-cards/{code}/void", response_model=GiftCardResponse)
async def void_gift_card(
    code: str,
    payload: VoidGiftCardRequest,
    admin_id: UUID = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> GiftCardResponse:
    card = await GiftCardService(db).void(code, admin_id=admin_id, reason=payload.reason)
    return GiftCardResponse.model_validate(card)
