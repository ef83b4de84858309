"""Unit-of-work helpers for read-modify-write operations against the store."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.settings import settings


T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
_RETRYABLE_MESSAGES = ("database is locked", "could not serialize", "deadlock detected")


def is_retryable_conflict(error: DBAPIError) -> bool:
    """Return True when the store rejected a commit because of a concurrent writer."""

    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(original or error).lower()
    return any(marker in message for marker in _RETRYABLE_MESSAGES)


async def run_atomic(
    session: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    label: str = "unit_of_work",
) -> T:
    """Run ``operation`` and commit it as one transaction, re-running it on conflicts.

    ``operation`` must only stage changes on ``session`` (flush, never commit);
    it is re-executed from scratch against a fresh snapshot after a rollback.
    Business errors raised by ``operation`` roll back and propagate untouched.
    """

    max_attempts = max(1, attempts or settings.store_conflict_retries)
    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
            await session.commit()
            return result
        except DBAPIError as error:
            await session.rollback()
            if attempt >= max_attempts or not is_retryable_conflict(error):
                raise
            logger.warning(
                "Retrying unit of work after store conflict",
                label=label,
                attempt=attempt,
                error=str(error.orig),
            )
            await asyncio.sleep(0.01 * attempt)
        except BaseException:
            await session.rollback()
            raise
    raise RuntimeError("unreachable")  # pragma: no cover
