"""Request and response models for the credit ledger endpoints."""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from credits_api.models.gift_card import GiftCardStatus
from credits_api.models.wallet import CreditTransactionType


class ApplyTransactionRequest(BaseModel):
    user_id: UUID
    type: CreditTransactionType
    amount: int = Field(..., strict=True, description="Signed credit delta; negative debits the wallet")
    description: Optional[str] = Field(None, max_length=500)
    reference_id: Optional[str] = Field(None, description="Idempotency key for externally triggered changes")


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    type: CreditTransactionType
    amount: int
    balance_after: int
    description: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: datetime


class ApplyTransactionResponse(BaseModel):
    success: Literal[True] = True
    new_balance: int
    transaction: TransactionResponse
    replayed: bool = False


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    balance: int
    lifetime_earned: int
    lifetime_spent: int


class TransactionHistoryResponse(BaseModel):
    success: Literal[True] = True
    transactions: list[TransactionResponse]
    total_count: int
    limit: int
    offset: int


class RedeemGiftCardRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class RedeemGiftCardResponse(BaseModel):
    success: Literal[True] = True
    credits_value: int
    new_balance: int


class AdminAdjustRequest(BaseModel):
    user_id: UUID
    amount: int = Field(..., strict=True)
    reason: str = Field(..., max_length=1000)
    type: CreditTransactionType = CreditTransactionType.ADJUSTMENT


class AdminAdjustResponse(BaseModel):
    success: Literal[True] = True
    new_balance: int
    transaction_id: UUID
    audit_id: UUID


class IssueGiftCardRequest(BaseModel):
    credits_value: int = Field(..., strict=True, gt=0)
    price_cents: int = Field(0, ge=0)
    purchased_by: Optional[UUID] = None
    expires_at: Optional[datetime] = None


class VoidGiftCardRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


class GiftCardSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    credits_value: int
    price_cents: int
    status: GiftCardStatus
    purchased_by: Optional[UUID] = None
    redeemed_by: Optional[UUID] = None
    redeemed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class GiftCardResponse(GiftCardSummary):
    success: Literal[True] = True


class GiftCardListResponse(BaseModel):
    success: Literal[True] = True
    gift_cards: list[GiftCardSummary]
    total_count: int
    limit: int
    offset: int


class WalletVerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    transaction_sum: int
    transaction_count: int


class AdminWalletResponse(BaseModel):
    success: Literal[True] = True
    wallet: WalletResponse
    verification: WalletVerificationResponse
    recent_transactions: list[TransactionResponse]


class AdminWalletListResponse(BaseModel):
    success: Literal[True] = True
    wallets: list[WalletResponse]
    total_count: int
    limit: int
    offset: int
