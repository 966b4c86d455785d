"""Gift card issuance and exactly-once redemption."""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.core.clock import ensure_aware, utcnow
from credits_api.core.settings import settings
from credits_api.db.retry import run_in_unit
from credits_api.models.audit import AuditActionType, AuditTargetType
from credits_api.models.gift_card import GiftCard, GiftCardStatus
from credits_api.models.wallet import CreditTransactionType
from credits_api.observability.ledger import get_ledger_store
from credits_api.schemas.snapshots import GiftCardSnapshot
from credits_api.services.audit import AuditLogService
from credits_api.services.errors import (
    ConcurrencyConflict,
    GiftCardAlreadyRedeemed,
    GiftCardExpired,
    GiftCardNotFound,
    GiftCardVoid,
    InvalidGiftCardCode,
    ServiceError,
    ValidationFailed,
)
from credits_api.services.ledger.engine import TransactionEngine

# Unambiguous alphabet for generated codes (no 0/O, 1/I/L).
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
CODE_GROUPS = 3
CODE_GROUP_LENGTH = 4
_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4}(?:-[A-Z0-9]{4}){2}$")
_MAX_CODE_GENERATION_ATTEMPTS = 10


@dataclass
class RedemptionResult:
    credits_value: int
    new_balance: int
    gift_card: GiftCard


@dataclass
class GiftCardPage:
    gift_cards: list[GiftCard]
    total_count: int
    limit: int
    offset: int


def normalize_code(raw: str | None) -> str:
    """Trim and upper-case ``raw``; reject anything not shaped like ``ABCD-EFGH-IJKL``."""

    if not isinstance(raw, str):
        raise InvalidGiftCardCode("Gift card code is required")
    code = raw.strip().upper()
    if not _CODE_PATTERN.match(code):
        raise InvalidGiftCardCode("Gift card code format is invalid", code=code[:32])
    return code


def generate_code() -> str:
    groups = [
        "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_GROUP_LENGTH))
        for _ in range(CODE_GROUPS)
    ]
    return "-".join(groups)


class GiftCardService:
    """Coordinates gift card lifecycle: issue → redeemed | expired | void."""

    def __init__(self, session: AsyncSession, *, engine: TransactionEngine | None = None) -> None:
        self._session = session
        self._engine = engine or TransactionEngine(session)
        self._audit = AuditLogService(session)
        self._metrics = get_ledger_store()

    async def redeem(self, code: str, user_id: UUID) -> RedemptionResult:
        """Redeem ``code`` for ``user_id``.

        Lookup, status check, check-and-set to ``redeemed`` and the wallet
        credit commit together. Of two concurrent redeemers exactly one wins;
        the other sees ``GiftCardAlreadyRedeemed``.
        """

        normalized = normalize_code(code)

        async def work() -> RedemptionResult:
            card = await self._get_by_code(normalized)
            self._ensure_redeemable(card)

            now = utcnow()
            claimed = await self._session.execute(
                update(GiftCard)
                .where(GiftCard.id == card.id, GiftCard.status == GiftCardStatus.ISSUED)
                .values(status=GiftCardStatus.REDEEMED, redeemed_by=user_id, redeemed_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise GiftCardAlreadyRedeemed("Gift card has already been redeemed", code=normalized)

            credit = await self._engine.stage(
                user_id=user_id,
                transaction_type=CreditTransactionType.GIFT_CARD,
                amount=int(card.credits_value),
                description=f"Gift card {normalized} redeemed",
                reference_id=normalized,
            )
            await self._session.refresh(card)
            return RedemptionResult(
                credits_value=int(card.credits_value),
                new_balance=credit.new_balance,
                gift_card=card,
            )

        try:
            result = await run_in_unit(self._session, work, operation="redeem_gift_card")
        except ServiceError as exc:
            self._metrics.record_redemption(exc.kind)
            logger.info("Gift card redemption rejected", code=normalized, user_id=str(user_id), kind=exc.kind)
            raise

        self._metrics.record_redemption("success")
        self._metrics.record_transaction(CreditTransactionType.GIFT_CARD.value)
        logger.info(
            "Gift card redeemed",
            code=normalized,
            user_id=str(user_id),
            credits_value=result.credits_value,
            new_balance=result.new_balance,
        )
        return result

    async def issue(
        self,
        *,
        credits_value: int,
        price_cents: int = 0,
        purchased_by: UUID | None = None,
        expires_at: datetime | None = None,
        issued_by_admin: UUID | None = None,
    ) -> GiftCard:
        """Create a gift card with a fresh unique code."""

        if isinstance(credits_value, bool) or not isinstance(credits_value, int) or credits_value <= 0:
            raise ValidationFailed("Gift card value must be a positive number of credits")
        if price_cents < 0:
            raise ValidationFailed("Gift card price cannot be negative")
        if expires_at is None and settings.gift_card_default_ttl_days:
            expires_at = utcnow() + timedelta(days=settings.gift_card_default_ttl_days)

        async def work() -> GiftCard:
            code = await self._unused_code()
            card = GiftCard(
                code=code,
                credits_value=credits_value,
                price_cents=price_cents,
                purchased_by=purchased_by,
                expires_at=expires_at,
                status=GiftCardStatus.ISSUED,
            )
            self._session.add(card)
            await self._session.flush()
            if issued_by_admin is not None:
                await self._audit.record(
                    admin_id=issued_by_admin,
                    action_type=AuditActionType.GIFT_CARD_ISSUED,
                    target_type=AuditTargetType.GIFT_CARD,
                    target_id=card.code,
                    before_state=None,
                    after_state=GiftCardSnapshot.of(card),
                    reason=None,
                )
            return card

        card = await run_in_unit(self._session, work, operation="issue_gift_card")
        logger.info("Issued gift card", gift_card_id=str(card.id), credits_value=credits_value)
        return card

    async def void(self, code: str, *, admin_id: UUID, reason: str) -> GiftCard:
        """Void an unredeemed card; the audit entry commits with the status change."""

        normalized = normalize_code(code)
        reason_text = (reason or "").strip()
        if not reason_text:
            raise ValidationFailed("A reason is required to void a gift card")

        async def work() -> GiftCard:
            card = await self._get_by_code(normalized)
            self._ensure_redeemable(card)
            before = GiftCardSnapshot.of(card)
            claimed = await self._session.execute(
                update(GiftCard)
                .where(GiftCard.id == card.id, GiftCard.status == GiftCardStatus.ISSUED)
                .values(status=GiftCardStatus.VOID)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise GiftCardAlreadyRedeemed("Gift card has already been redeemed", code=normalized)
            await self._session.refresh(card)
            await self._audit.record(
                admin_id=admin_id,
                action_type=AuditActionType.GIFT_CARD_VOID,
                target_type=AuditTargetType.GIFT_CARD,
                target_id=card.code,
                before_state=before,
                after_state=GiftCardSnapshot.of(card),
                reason=reason_text,
            )
            return card

        card = await run_in_unit(self._session, work, operation="void_gift_card")
        logger.info("Voided gift card", code=normalized, admin_id=str(admin_id))
        return card

    async def expire_overdue(self, *, reference_time: datetime | None = None) -> int:
        """Flip issued cards past their expiry to ``expired``; returns the count."""

        now = reference_time or utcnow()

        async def work() -> int:
            result = await self._session.execute(
                update(GiftCard)
                .where(
                    GiftCard.status == GiftCardStatus.ISSUED,
                    GiftCard.expires_at.is_not(None),
                    GiftCard.expires_at <= now,
                )
                .values(status=GiftCardStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            return int(result.rowcount or 0)

        expired = await run_in_unit(self._session, work, operation="expire_gift_cards")
        if expired:
            logger.info("Expired overdue gift cards", count=expired, reference_time=now.isoformat())
        return expired

    async def list_for_user(self, user_id: UUID, *, limit: int = 50, offset: int = 0) -> GiftCardPage:
        """Cards the user bought or redeemed, newest first."""

        bounded_limit = max(1, min(limit, 100))
        bounded_offset = max(0, offset)
        owned = or_(GiftCard.purchased_by == user_id, GiftCard.redeemed_by == user_id)

        total = int((await self._session.execute(select(func.count(GiftCard.id)).where(owned))).scalar_one())
        stmt = (
            select(GiftCard)
            .where(owned)
            .order_by(GiftCard.created_at.desc(), GiftCard.id.desc())
            .limit(bounded_limit)
            .offset(bounded_offset)
        )
        cards = list((await self._session.execute(stmt)).scalars().all())
        return GiftCardPage(gift_cards=cards, total_count=total, limit=bounded_limit, offset=bounded_offset)

    async def _get_by_code(self, code: str) -> GiftCard:
        stmt = (
            select(GiftCard)
            .where(GiftCard.code == code)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        card = result.scalar_one_or_none()
        if card is None:
            raise GiftCardNotFound("Gift card not found", code=code)
        return card

    @staticmethod
    def _ensure_redeemable(card: GiftCard) -> None:
        if card.status == GiftCardStatus.REDEEMED:
            raise GiftCardAlreadyRedeemed("Gift card has already been redeemed", code=card.code)
        if card.status == GiftCardStatus.VOID:
            raise GiftCardVoid("Gift card has been voided", code=card.code)
        if card.status == GiftCardStatus.EXPIRED:
            raise GiftCardExpired("Gift card has expired", code=card.code)
        expires_at = ensure_aware(card.expires_at)
        if expires_at is not None and expires_at <= utcnow():
            raise GiftCardExpired("Gift card has expired", code=card.code)

    async def _unused_code(self) -> str:
        for _ in range(_MAX_CODE_GENERATION_ATTEMPTS):
            candidate = generate_code()
            existing = await self._session.execute(select(GiftCard.id).where(GiftCard.code == candidate))
            if existing.scalar_one_or_none() is None:
                return candidate
        raise ConcurrencyConflict(
            "Could not allocate a unique gift card code",
            operation="issue_gift_card",
            attempts=_MAX_CODE_GENERATION_ATTEMPTS,
        )
