"""Transaction runner with bounded retry on concurrency conflicts.

Routes wrap a service call in `run_in_transaction`: the session is committed
on success and rolled back on any error. Conflicts (our own version-check
ConcurrencyConflictError, PostgreSQL serialization failure 40001, deadlock
40P01) are retried by tenacity with exponential backoff; once attempts run
out the caller gets RetryExhaustedError. Only pass operations that are safe to
re-run from scratch.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings
from src.mk_common.errors import ConcurrencyConflictError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PG_RETRY_SQLSTATES = frozenset({"40001", "40P01"})
_MAX_BACKOFF_SECONDS = 1.0


def _sqlstate_of(exc: BaseException) -> str | None:
    orig: Any = getattr(exc, "orig", None)
    for candidate in (exc, orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if isinstance(code, str):
            return code
    return None


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ConcurrencyConflictError):
        return True
    if isinstance(exc, DBAPIError):
        return _sqlstate_of(exc) in PG_RETRY_SQLSTATES
    return False


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.info("Retrying after conflict (attempt %d): %s", state.attempt_number, exc)


async def run_in_transaction(
    db: Any,
    operation: Callable[[], Awaitable[T]],
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> T:
    attempts = max_attempts or settings.TX_MAX_ATTEMPTS
    backoff = settings.TX_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, max=_MAX_BACKOFF_SECONDS),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry,
    )
    try:
        async for attempt in retrying:
            with attempt:
                try:
                    result = await operation()
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
    except RetryError as exc:
        last = exc.last_attempt.exception()
        logger.warning("Giving up after %d attempts: %s", attempts, last)
        raise RetryExhaustedError() from last
    return result
