"""Ledger reconciliation job: verify wallets against history, expire gift cards."""

from __future__ import annotations

import datetime as dt
from typing import Any, Awaitable, Callable, Dict
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credits_api.core.settings import settings
from credits_api.models.wallet import CreditWallet
from credits_api.services.errors import LedgerInvariantViolation
from credits_api.services.ledger import GiftCardService, TransactionEngine

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def _open_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


async def run_reconciliation(
    *,
    session_factory: SessionFactory,
    batch_size: int | None = None,
) -> Dict[str, Any]:
    """Walk every wallet in ``user_id`` order and report invariant violations.

    Violations are logged and counted, never corrected: an operator has to
    look at the history before any balance is touched.
    """

    limit = max(1, batch_size or settings.ledger_reconciliation_batch_size)
    started_at = dt.datetime.now(dt.timezone.utc)
    summary: Dict[str, Any] = {"verified": 0, "violations": [], "expired_gift_cards": 0}

    session = await _open_session(session_factory)
    async with session as managed_session:
        engine = TransactionEngine(managed_session)
        last_user_id: UUID | None = None
        while True:
            stmt = select(CreditWallet.user_id).order_by(CreditWallet.user_id).limit(limit)
            if last_user_id is not None:
                stmt = stmt.where(CreditWallet.user_id > last_user_id)
            user_ids = list((await managed_session.execute(stmt)).scalars().all())
            if not user_ids:
                break
            for user_id in user_ids:
                try:
                    await engine.verify_wallet(user_id)
                except LedgerInvariantViolation:
                    summary["violations"].append(str(user_id))
                else:
                    summary["verified"] += 1
            last_user_id = user_ids[-1]
            # Release the read snapshot between batches.
            await managed_session.rollback()

        summary["expired_gift_cards"] = await GiftCardService(managed_session).expire_overdue()

    summary["duration_seconds"] = (dt.datetime.now(dt.timezone.utc) - started_at).total_seconds()
    log = logger.bind(summary=summary)
    if summary["violations"]:
        log.error("Ledger reconciliation found inconsistent wallets", violation_count=len(summary["violations"]))
    else:
        log.info("Ledger reconciliation completed")
    return summary


__all__ = ["run_reconciliation"]
