"""Typed before/after snapshots stored in the audit log."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from credits_api.models.gift_card import GiftCard, GiftCardStatus
from credits_api.models.order import MakerOrderStatusEnum, Order, OrderStatusEnum
from credits_api.models.wallet import CreditWallet


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class WalletSnapshot(Snapshot):
    user_id: UUID
    balance: int
    lifetime_earned: int
    lifetime_spent: int

    @classmethod
    def of(cls, wallet: CreditWallet | None, *, user_id: UUID) -> "WalletSnapshot":
        """Snapshot a wallet; a user without one is an all-zero wallet."""

        if wallet is None:
            return cls(user_id=user_id, balance=0, lifetime_earned=0, lifetime_spent=0)
        return cls(
            user_id=wallet.user_id,
            balance=int(wallet.balance or 0),
            lifetime_earned=int(wallet.lifetime_earned or 0),
            lifetime_spent=int(wallet.lifetime_spent or 0),
        )


class OrderSnapshot(Snapshot):
    order_id: UUID
    status: OrderStatusEnum
    payment_confirmed_at: Optional[datetime] = None
    maker_id: Optional[UUID] = None
    maker_status: Optional[MakerOrderStatusEnum] = None
    tracking_info: Optional[dict[str, Any]] = None

    @classmethod
    def of(cls, order: Order) -> "OrderSnapshot":
        maker_order = order.maker_order
        return cls(
            order_id=order.id,
            status=order.status,
            payment_confirmed_at=order.payment_confirmed_at,
            maker_id=maker_order.maker_id if maker_order else None,
            maker_status=maker_order.status if maker_order else None,
            tracking_info=dict(maker_order.tracking_info) if maker_order and maker_order.tracking_info else None,
        )


class GiftCardSnapshot(Snapshot):
    code: str
    status: GiftCardStatus
    credits_value: int
    redeemed_by: Optional[UUID] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def of(cls, card: GiftCard) -> "GiftCardSnapshot":
        return cls(
            code=card.code,
            status=card.status,
            credits_value=int(card.credits_value),
            redeemed_by=card.redeemed_by,
            expires_at=card.expires_at,
        )
