"""Bounded retry for transient storage failures.

Only connection-level failures are retried: TransientStorageError and
the driver errors listed in TRANSIENT_ERRORS.  Domain errors describe
caller input or lifecycle state and are re-raised on the first attempt.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import InterfaceError, OperationalError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from skillswap.core.config import SETTINGS
from skillswap.core.errors import TransientStorageError, Unavailable
from skillswap.core.metrics import STORAGE_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    TransientStorageError,
    OperationalError,
    InterfaceError,
    RedisConnectionError,
    RedisTimeoutError,
)


def _log_retry(name: str, attempts: int) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        STORAGE_RETRIES.labels(outcome="retried").inc()
        logger.warning(
            "%s hit transient storage error (attempt %d/%d): %s",
            name,
            state.attempt_number,
            attempts,
            state.outcome.exception() if state.outcome else None,
        )

    return before_sleep


async def with_storage_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff_ms: int | None = None,
    name: str = "storage operation",
) -> T:
    """Run ``operation`` and retry it on a transient storage error.

    The delay starts at ``backoff_ms`` and doubles after each failed
    attempt.  When every attempt fails the last error is chained onto an
    Unavailable.
    """
    attempts = attempts if attempts is not None else SETTINGS.storage_retry_attempts
    backoff_ms = backoff_ms if backoff_ms is not None else SETTINGS.storage_retry_backoff_ms

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff_ms / 1000, min=0),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=_log_retry(name, attempts),
        reraise=False,
    )
    try:
        return await retrying(operation)
    except RetryError as exc:
        last = exc.last_attempt.exception()
        STORAGE_RETRIES.labels(outcome="exhausted").inc()
        logger.error("%s failed after %d attempts: %s", name, attempts, last)
        raise Unavailable() from last
