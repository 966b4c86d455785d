"""Worker wiring for the periodic ledger reconciliation sweep."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from loguru import logger

from credits_api.core.settings import settings
from credits_api.jobs.ledger_reconciliation import SessionFactory, run_reconciliation


class LedgerReconciliationWorker:
    """Periodically verifies wallets and expires overdue gift cards."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.ledger_reconciliation_interval_seconds
        self._batch_size = batch_size or settings.ledger_reconciliation_batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self.last_summary: Dict[str, Any] | None = None

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Ledger reconciliation worker started",
            interval_seconds=self.interval_seconds,
            batch_size=self._batch_size,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Ledger reconciliation worker stopped")

    async def run_once(self) -> Dict[str, Any]:
        summary = await run_reconciliation(session_factory=self._session_factory, batch_size=self._batch_size)
        self.last_summary = summary
        return summary

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Ledger reconciliation iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
