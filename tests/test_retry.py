from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm.exc import StaleDataError

from credits_api.db.retry import backoff_delay, run_in_unit
from credits_api.services.errors import ConcurrencyConflict, InsufficientBalance, ServiceUnavailable


def _session():
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def test_backoff_grows_and_is_capped():
    assert backoff_delay(1, base_delay=0.1, max_delay=1.0) == pytest.approx(0.1)
    assert backoff_delay(3, base_delay=0.1, max_delay=1.0) == pytest.approx(0.4)
    assert backoff_delay(10, base_delay=0.1, max_delay=1.0) == pytest.approx(1.0)
    assert 1.0 <= backoff_delay(10, base_delay=0.1, max_delay=1.0, jitter=0.5) <= 1.5


@pytest.mark.asyncio
async def test_retries_conflicts_then_commits():
    session = _session()
    calls = {"count": 0}

    async def work():
        calls["count"] += 1
        if calls["count"] < 3:
            raise StaleDataError("version mismatch")
        return "done"

    result = await run_in_unit(session, work, operation="unit", attempts=5, base_delay=0, max_delay=0)

    assert result == "done"
    assert calls["count"] == 3
    assert session.rollback.await_count == 2
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_exhausted_retries_raise_concurrency_conflict():
    session = _session()

    async def work():
        raise OperationalError("UPDATE", {}, Exception("database is locked"))

    with pytest.raises(ConcurrencyConflict):
        await run_in_unit(session, work, operation="unit", attempts=2, base_delay=0, max_delay=0)

    assert session.rollback.await_count == 2
    session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_business_errors_are_not_retried():
    session = _session()
    work = AsyncMock(side_effect=InsufficientBalance("Insufficient credit balance"))

    with pytest.raises(InsufficientBalance):
        await run_in_unit(session, work, operation="unit", attempts=5)

    assert work.await_count == 1
    session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_store_failures_become_service_unavailable():
    session = _session()
    work = AsyncMock(side_effect=ProgrammingError("SELECT", {}, Exception("relation missing")))

    with pytest.raises(ServiceUnavailable):
        await run_in_unit(session, work, operation="unit", attempts=5)

    assert work.await_count == 1
