"""Privileged, reason-required balance adjustments."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.core.settings import settings
from credits_api.db.retry import run_in_unit
from credits_api.models.audit import AuditActionType, AuditLogEntry, AuditTargetType
from credits_api.models.wallet import CreditTransaction, CreditTransactionType
from credits_api.observability.ledger import get_ledger_store
from credits_api.schemas.snapshots import WalletSnapshot
from credits_api.services.audit import AuditLogService
from credits_api.services.errors import ServiceError, ValidationFailed
from credits_api.services.ledger.engine import TransactionEngine

ADJUSTMENT_TYPES: frozenset[CreditTransactionType] = frozenset(
    {
        CreditTransactionType.BONUS,
        CreditTransactionType.CORRECTION,
        CreditTransactionType.REFUND,
        CreditTransactionType.ADJUSTMENT,
    }
)


@dataclass
class AdjustmentResult:
    new_balance: int
    transaction: CreditTransaction
    audit_entry: AuditLogEntry


class AdminAdjustmentService:
    """Admin console balance mutations, each paired with exactly one audit entry."""

    def __init__(self, session: AsyncSession, *, engine: TransactionEngine | None = None) -> None:
        self._session = session
        self._engine = engine or TransactionEngine(session)
        self._audit = AuditLogService(session)
        self._metrics = get_ledger_store()

    async def adjust(
        self,
        *,
        target_user_id: UUID,
        amount: int,
        reason: str | None,
        adjustment_type: CreditTransactionType,
        acting_admin_id: UUID,
    ) -> AdjustmentResult:
        reason_text = self._validate(amount=amount, reason=reason, adjustment_type=adjustment_type)

        async def work() -> AdjustmentResult:
            before = WalletSnapshot.of(await self._engine.lock_wallet(target_user_id), user_id=target_user_id)
            credit = await self._engine.stage(
                user_id=target_user_id,
                transaction_type=adjustment_type,
                amount=amount,
                description=f"Admin {adjustment_type.value}: {reason_text}",
            )
            after = WalletSnapshot.of(await self._engine.get_wallet(target_user_id), user_id=target_user_id)
            entry = await self._audit.record(
                admin_id=acting_admin_id,
                action_type=AuditActionType.CREDIT_ADJUSTMENT,
                target_type=AuditTargetType.CREDIT_WALLET,
                target_id=str(target_user_id),
                before_state=before,
                after_state=after,
                reason=reason_text,
            )
            return AdjustmentResult(new_balance=credit.new_balance, transaction=credit.transaction, audit_entry=entry)

        try:
            result = await run_in_unit(self._session, work, operation="admin_adjust_credits")
        except ServiceError as exc:
            self._metrics.record_rejection(exc.kind)
            raise

        self._metrics.record_transaction(adjustment_type.value)
        logger.info(
            "Admin credit adjustment applied",
            admin_id=str(acting_admin_id),
            user_id=str(target_user_id),
            amount=amount,
            adjustment_type=adjustment_type.value,
            new_balance=result.new_balance,
            audit_id=str(result.audit_entry.id),
        )
        return result

    @staticmethod
    def _validate(*, amount: int, reason: str | None, adjustment_type: CreditTransactionType) -> str:
        reason_text = reason.strip() if isinstance(reason, str) else ""
        if not reason_text:
            raise ValidationFailed("A reason is required for credit adjustments")
        if adjustment_type not in ADJUSTMENT_TYPES:
            raise ValidationFailed(
                "Unsupported adjustment type",
                adjustment_type=getattr(adjustment_type, "value", adjustment_type),
            )
        TransactionEngine.validate(amount=amount, reference_id=None)
        ceiling = settings.admin_adjustment_max_abs
        if ceiling is not None and abs(amount) > ceiling:
            raise ValidationFailed("Adjustment exceeds the configured maximum", maximum=ceiling)
        return reason_text
