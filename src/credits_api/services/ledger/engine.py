"""Transaction engine: the only writer of wallet rows."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.core.settings import settings
from credits_api.db.retry import run_in_unit
from credits_api.models.audit import AuditActionType, AuditTargetType
from credits_api.models.wallet import CreditTransaction, CreditTransactionType, CreditWallet
from credits_api.observability.ledger import get_ledger_store
from credits_api.schemas.snapshots import WalletSnapshot
from credits_api.services.audit import AuditLogService
from credits_api.services.errors import (
    IdempotencyConflict,
    InsufficientBalance,
    LedgerInvariantViolation,
    ServiceError,
    ValidationFailed,
    WalletNotFound,
)

MAX_REFERENCE_LENGTH = 128


@dataclass
class TransactionResult:
    new_balance: int
    transaction: CreditTransaction
    replayed: bool = False


@dataclass
class TransactionPage:
    entries: list[CreditTransaction]
    total_count: int
    limit: int
    offset: int


@dataclass
class WalletPage:
    wallets: list[CreditWallet]
    total_count: int
    limit: int
    offset: int


@dataclass
class WalletVerification:
    user_id: UUID
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    transaction_sum: int
    transaction_count: int


class TransactionEngine:
    """Applies balance deltas atomically and keeps wallet and ledger in lockstep.

    Every balance change produces exactly one ``CreditTransaction`` whose
    ``balance_after`` equals the wallet balance written in the same unit.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._metrics = get_ledger_store()

    async def apply_transaction(
        self,
        *,
        user_id: UUID,
        transaction_type: CreditTransactionType,
        amount: int,
        description: str | None = None,
        reference_id: str | None = None,
        acting_admin_id: UUID | None = None,
    ) -> TransactionResult:
        """Apply one balance change as its own committed unit of work.

        When an admin posts the change directly, a ``ledger_transaction`` audit
        entry commits with it. Replays are not audited twice.
        """

        reference = self.validate(amount=amount, reference_id=reference_id)

        async def work() -> TransactionResult:
            before = None
            if acting_admin_id is not None:
                before = WalletSnapshot.of(await self.lock_wallet(user_id), user_id=user_id)
            result = await self.stage(
                user_id=user_id,
                transaction_type=transaction_type,
                amount=amount,
                description=description,
                reference_id=reference,
            )
            if acting_admin_id is not None and not result.replayed:
                await AuditLogService(self._session).record(
                    admin_id=acting_admin_id,
                    action_type=AuditActionType.LEDGER_TRANSACTION,
                    target_type=AuditTargetType.CREDIT_WALLET,
                    target_id=str(user_id),
                    before_state=before,
                    after_state=WalletSnapshot.of(await self.get_wallet(user_id), user_id=user_id),
                    reason=description,
                )
            return result

        try:
            result = await run_in_unit(self._session, work, operation="apply_transaction")
        except ServiceError as exc:
            self._metrics.record_rejection(exc.kind)
            raise

        self._metrics.record_transaction(transaction_type.value, replayed=result.replayed)
        return result

    @staticmethod
    def validate(*, amount: int, reference_id: str | None) -> str | None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationFailed("Amount must be an integer number of credits", amount=amount)
        if amount == 0:
            raise ValidationFailed("Amount must be non-zero")
        if reference_id is None:
            return None
        reference = str(reference_id).strip()
        if not reference:
            raise ValidationFailed("Reference id cannot be blank")
        if len(reference) > MAX_REFERENCE_LENGTH:
            raise ValidationFailed("Reference id is too long", max_length=MAX_REFERENCE_LENGTH)
        return reference

    async def stage(
        self,
        *,
        user_id: UUID,
        transaction_type: CreditTransactionType,
        amount: int,
        description: str | None = None,
        reference_id: str | None = None,
    ) -> TransactionResult:
        """Apply the change inside the caller's unit of work (flush, no commit)."""

        reference = self.validate(amount=amount, reference_id=reference_id)

        if reference is not None:
            existing = await self._find_by_reference(transaction_type, reference)
            if existing is not None:
                return await self._replay(existing, user_id=user_id, amount=amount)

        wallet = await self.lock_wallet(user_id)
        if wallet is None:
            if amount < 0:
                raise InsufficientBalance(
                    "Insufficient credit balance",
                    balance=0,
                    requested=-amount,
                )
            wallet = CreditWallet(user_id=user_id, balance=0, lifetime_earned=0, lifetime_spent=0)
            self._session.add(wallet)
            logger.info("Creating credit wallet", user_id=str(user_id))

        balance_before = int(wallet.balance or 0)
        new_balance = balance_before + amount
        if new_balance < 0:
            raise InsufficientBalance(
                "Insufficient credit balance",
                balance=balance_before,
                requested=-amount,
            )

        wallet.balance = new_balance
        if amount > 0:
            wallet.lifetime_earned = int(wallet.lifetime_earned or 0) + amount
        else:
            wallet.lifetime_spent = int(wallet.lifetime_spent or 0) - amount

        transaction = CreditTransaction(
            user_id=user_id,
            type=transaction_type,
            amount=amount,
            balance_after=new_balance,
            description=description,
            reference_id=reference,
        )
        self._session.add(transaction)
        await self._session.flush()

        logger.info(
            "Staged credit transaction",
            user_id=str(user_id),
            transaction_id=str(transaction.id),
            transaction_type=transaction_type.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=new_balance,
            reference_id=reference,
        )
        return TransactionResult(new_balance=new_balance, transaction=transaction)

    async def get_wallet(self, user_id: UUID) -> CreditWallet | None:
        stmt = select(CreditWallet).where(CreditWallet.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_wallets(self, *, limit: int = 50, offset: int = 0) -> WalletPage:
        """All wallets, largest balance first, for the admin console."""

        bounded_limit = max(1, min(limit, settings.transaction_history_max_page_size))
        bounded_offset = max(0, offset)

        total = int((await self._session.execute(select(func.count(CreditWallet.id)))).scalar_one())
        stmt = (
            select(CreditWallet)
            .order_by(CreditWallet.balance.desc(), CreditWallet.user_id)
            .limit(bounded_limit)
            .offset(bounded_offset)
        )
        wallets = list((await self._session.execute(stmt)).scalars().all())
        return WalletPage(wallets=wallets, total_count=total, limit=bounded_limit, offset=bounded_offset)

    async def list_transactions(self, user_id: UUID, *, limit: int = 50, offset: int = 0) -> TransactionPage:
        """Return a user's transactions newest first."""

        bounded_limit = max(1, min(limit, settings.transaction_history_max_page_size))
        bounded_offset = max(0, offset)

        count_stmt = select(func.count(CreditTransaction.id)).where(CreditTransaction.user_id == user_id)
        total = int((await self._session.execute(count_stmt)).scalar_one())

        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .limit(bounded_limit)
            .offset(bounded_offset)
        )
        result = await self._session.execute(stmt)
        return TransactionPage(
            entries=list(result.scalars().all()),
            total_count=total,
            limit=bounded_limit,
            offset=bounded_offset,
        )

    async def verify_wallet(self, user_id: UUID) -> WalletVerification:
        """Check balance == lifetime_earned - lifetime_spent == sum(transactions).

        A mismatch is a severe internal fault: it is reported, never corrected.
        """

        # One statement, one snapshot: a write committing between a wallet read
        # and a separate SUM would look like drift.
        transaction_sum = (
            select(func.coalesce(func.sum(CreditTransaction.amount), 0))
            .where(CreditTransaction.user_id == CreditWallet.user_id)
            .correlate(CreditWallet)
            .scalar_subquery()
        )
        transaction_count = (
            select(func.count(CreditTransaction.id))
            .where(CreditTransaction.user_id == CreditWallet.user_id)
            .correlate(CreditWallet)
            .scalar_subquery()
        )
        stmt = select(
            CreditWallet.balance,
            CreditWallet.lifetime_earned,
            CreditWallet.lifetime_spent,
            transaction_sum,
            transaction_count,
        ).where(CreditWallet.user_id == user_id)
        row = (await self._session.execute(stmt)).one_or_none()
        if row is None:
            raise WalletNotFound("Wallet not found", user_id=user_id)

        balance, lifetime_earned, lifetime_spent, total, count = row
        verification = WalletVerification(
            user_id=user_id,
            balance=int(balance),
            lifetime_earned=int(lifetime_earned),
            lifetime_spent=int(lifetime_spent),
            transaction_sum=int(total),
            transaction_count=int(count),
        )
        consistent = (
            verification.balance == verification.lifetime_earned - verification.lifetime_spent
            and verification.balance == verification.transaction_sum
            and verification.balance >= 0
        )
        if not consistent:
            self._metrics.record_invariant_violation()
            logger.critical(
                "Ledger invariant violated",
                user_id=str(user_id),
                balance=verification.balance,
                lifetime_earned=verification.lifetime_earned,
                lifetime_spent=verification.lifetime_spent,
                transaction_sum=verification.transaction_sum,
            )
            raise LedgerInvariantViolation(
                "Wallet balance disagrees with its transaction history",
                user_id=user_id,
            )
        return verification

    async def lock_wallet(self, user_id: UUID) -> CreditWallet | None:
        stmt = (
            select(CreditWallet)
            .where(CreditWallet.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_by_reference(
        self,
        transaction_type: CreditTransactionType,
        reference_id: str,
    ) -> CreditTransaction | None:
        stmt = select(CreditTransaction).where(
            CreditTransaction.type == transaction_type,
            CreditTransaction.reference_id == reference_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _replay(self, existing: CreditTransaction, *, user_id: UUID, amount: int) -> TransactionResult:
        if existing.user_id != user_id or existing.amount != amount:
            raise IdempotencyConflict(
                "Reference id already used for a different transaction",
                reference_id=existing.reference_id,
            )
        wallet = await self.get_wallet(user_id)
        if wallet is None:
            raise LedgerInvariantViolation("Transaction exists without a wallet", user_id=user_id)
        logger.info(
            "Replayed idempotent credit transaction",
            user_id=str(user_id),
            transaction_id=str(existing.id),
            reference_id=existing.reference_id,
        )
        return TransactionResult(new_balance=int(wallet.balance), transaction=existing, replayed=True)
