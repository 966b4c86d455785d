"""Customer wallet reads and the internal transaction entry point."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.api.dependencies.session import require_admin_or_internal, require_session_user
from credits_api.db.session import get_session
from credits_api.schemas.ledger import (
    ApplyTransactionRequest,
    ApplyTransactionResponse,
    TransactionHistoryResponse,
    TransactionResponse,
    WalletResponse,
)
from credits_api.schemas.snapshots import WalletSnapshot
from credits_api.services.ledger import TransactionEngine


router = APIRouter(prefix="/credits", tags=["Credits"])


@router.post("/transactions", response_model=ApplyTransactionResponse, status_code=201)
async def apply_transaction(
    payload: ApplyTransactionRequest,
    acting_admin: UUID | None = Depends(require_admin_or_internal),
    db: AsyncSession = Depends(get_session),
) -> ApplyTransactionResponse:
    result = await TransactionEngine(db).apply_transaction(
        user_id=payload.user_id,
        transaction_type=payload.type,
        amount=payload.amount,
        description=payload.description,
        reference_id=payload.reference_id,
        acting_admin_id=acting_admin,
    )
    return ApplyTransactionResponse(
        new_balance=result.new_balance,
        transaction=TransactionResponse.model_validate(result.transaction),
        replayed=result.replayed,
    )


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> WalletResponse:
    wallet = await TransactionEngine(db).get_wallet(user_id)
    return WalletResponse(**WalletSnapshot.of(wallet, user_id=user_id).model_dump())


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def list_transactions(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(require_session_user),
    db: AsyncSession = Depends(get_session),
) -> TransactionHistoryResponse:
    page = await TransactionEngine(db).list_transactions(user_id, limit=limit, offset=offset)
    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(entry) for entry in page.entries],
        total_count=page.total_count,
        limit=page.limit,
        offset=page.offset,
    )
