"""Single-commit units of work with bounded retry on lock/version conflicts."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from credits_api.core.settings import settings
from credits_api.services.errors import ConcurrencyConflict, ServiceError, ServiceUnavailable

T = TypeVar("T")

# Stale optimistic version, unique race on insert, lock wait timeout.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (StaleDataError, IntegrityError, OperationalError)


def backoff_delay(attempt: int, *, base_delay: float, max_delay: float, jitter: float = 0.0) -> float:
    delay = min(max_delay, base_delay * (2 ** max(0, attempt - 1)))
    if jitter:
        delay += random.uniform(0, jitter)
    return max(delay, 0.0)


async def run_in_unit(
    session: AsyncSession,
    work: Callable[[], Awaitable[T]],
    *,
    operation: str,
    attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> T:
    """Run ``work`` and commit it as one unit, retrying the whole unit on conflicts.

    ``work`` must re-read everything it depends on: after a rollback every ORM
    instance in the session is expired.

    Every failure path rolls the session back, including business rejections
    (``ServiceError``). Callers sharing ``session`` must treat instances loaded
    before a rejected unit as expired: under the async driver touching their
    attributes triggers a lazy refresh outside the greenlet and raises
    ``MissingGreenlet``. Keep plain values (ids, amounts) or reload.
    """

    max_attempts = attempts or settings.ledger_retry_attempts
    base = settings.ledger_retry_base_delay_seconds if base_delay is None else base_delay
    ceiling = settings.ledger_retry_max_delay_seconds if max_delay is None else max_delay

    for attempt in range(1, max_attempts + 1):
        try:
            result = await work()
            await session.commit()
            return result
        except ServiceError:
            await session.rollback()
            raise
        except RETRYABLE_ERRORS as exc:
            await session.rollback()
            if attempt >= max_attempts:
                logger.warning(
                    "Unit of work exhausted retries",
                    operation=operation,
                    attempts=attempt,
                    error=str(exc),
                )
                raise ConcurrencyConflict(
                    f"{operation} could not be applied after {attempt} attempts",
                    operation=operation,
                ) from exc
            delay = backoff_delay(attempt, base_delay=base, max_delay=ceiling, jitter=base)
            logger.info(
                "Retrying unit of work after conflict",
                operation=operation,
                attempt=attempt,
                delay_seconds=delay,
                error_type=type(exc).__name__,
            )
            await asyncio.sleep(delay)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.exception("Store failure during unit of work", operation=operation)
            raise ServiceUnavailable(f"{operation} failed: store unavailable", operation=operation) from exc

    raise ConcurrencyConflict(f"{operation} was not attempted", operation=operation)  # pragma: no cover
