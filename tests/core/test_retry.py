"""Storage retry tests.

Only connection-level failures are retried; domain errors surface on
the first attempt.
"""

from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from skillswap.core.errors import InsufficientFunds, TransientStorageError, Unavailable
from skillswap.core.retry import with_storage_retry


class _Flaky:
    def __init__(self, failures: int, exc: BaseException) -> None:
        self.failures = failures
        self.exc = exc
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


def test_succeeds_after_transient_failures() -> None:
    op = _Flaky(2, TransientStorageError("blip"))
    assert asyncio.run(with_storage_retry(op, attempts=3, backoff_ms=0)) == "ok"
    assert op.calls == 3


@pytest.mark.parametrize(
    "exc",
    [
        OperationalError("SELECT 1", {}, Exception("connection reset")),
        RedisConnectionError("connection refused"),
    ],
)
def test_driver_connection_errors_are_retried(exc: BaseException) -> None:
    op = _Flaky(1, exc)
    assert asyncio.run(with_storage_retry(op, attempts=2, backoff_ms=0)) == "ok"
    assert op.calls == 2


def test_exhausted_retries_raise_unavailable() -> None:
    op = _Flaky(10, TransientStorageError("down"))
    with pytest.raises(Unavailable) as exc_info:
        asyncio.run(with_storage_retry(op, attempts=3, backoff_ms=0))
    assert op.calls == 3
    assert isinstance(exc_info.value.__cause__, TransientStorageError)


def test_domain_errors_are_not_retried() -> None:
    op = _Flaky(10, InsufficientFunds())
    with pytest.raises(InsufficientFunds):
        asyncio.run(with_storage_retry(op, attempts=3, backoff_ms=0))
    assert op.calls == 1


def test_unexpected_errors_are_not_retried() -> None:
    op = _Flaky(10, RuntimeError("bug"))
    with pytest.raises(RuntimeError):
        asyncio.run(with_storage_retry(op, attempts=3, backoff_ms=0))
    assert op.calls == 1


def _retries(outcome: str) -> float:
    return REGISTRY.get_sample_value("storage_retries_total", {"outcome": outcome}) or 0.0


def test_retry_metrics_count_each_sleep_and_exhaustion() -> None:
    retried, exhausted = _retries("retried"), _retries("exhausted")

    flaky = _Flaky(2, TransientStorageError("blip"))
    assert asyncio.run(with_storage_retry(flaky, attempts=3, backoff_ms=0)) == "ok"
    assert _retries("retried") - retried == 2
    assert _retries("exhausted") == exhausted

    with pytest.raises(Unavailable):
        down = _Flaky(5, TransientStorageError("down"))
        asyncio.run(with_storage_retry(down, attempts=2, backoff_ms=0))
    assert _retries("retried") - retried == 3
    assert _retries("exhausted") - exhausted == 1


def test_single_attempt_does_not_retry() -> None:
    op = _Flaky(1, TransientStorageError("blip"))
    with pytest.raises(Unavailable):
        asyncio.run(with_storage_retry(op, attempts=1, backoff_ms=0))
    assert op.calls == 1
