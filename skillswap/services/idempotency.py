"""Idempotency keys for enrollment.

A client that times out on ``POST /v1/courses/{id}/enroll`` cannot tell
whether it was charged.  Sending the same ``Idempotency-Key`` on the
retry lets the engine return the enrollment the first attempt created
instead of debiting again.

Keys map to ``"<user_id>:<course_id>:<enrollment_id>"`` and expire after
IDEMPOTENCY_TTL_SECONDS.  Redis keeps them shared across API instances;
without REDIS_URL an in-process dict stands in.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

from skillswap.db.redis import redis_pool


@runtime_checkable
class IdempotencyStore(Protocol):
    async def get(self, key: str) -> str | None:
        """Return the value bound to ``key``, or None if unbound or expired."""
        ...

    async def bind(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Bind ``key`` if it is free.  Returns False when already bound."""
        ...

    async def release(self, key: str) -> None: ...


class InMemoryIdempotencyStore:
    def __init__(self) -> None:
        # key -> (value, expiry timestamp)
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at < time.time():
            del self._entries[key]
            return None
        return value

    async def bind(self, key: str, value: str, ttl_seconds: int) -> bool:
        if await self.get(key) is not None:
            return False
        self._entries[key] = (value, time.time() + ttl_seconds)
        return True

    async def release(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class RedisIdempotencyStore:
    _PREFIX = "idempotency:enroll:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def bind(self, key: str, value: str, ttl_seconds: int) -> bool:
        # SET NX EX: bind and expiry in one atomic command.
        result = await self._redis.set(
            f"{self._PREFIX}{key}", value, nx=True, ex=ttl_seconds
        )
        return bool(result)

    async def release(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    idempotency_store: IdempotencyStore = RedisIdempotencyStore(redis_pool)
else:
    idempotency_store = InMemoryIdempotencyStore()
