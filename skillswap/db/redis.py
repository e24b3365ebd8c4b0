"""Shared Redis client for idempotency keys and the audit task queue.

``redis_pool`` is None when REDIS_URL is unset; both consumers then use
their in-memory implementations.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from skillswap.core.config import SETTINGS

logger = logging.getLogger(__name__)

redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    aioredis.from_url(SETTINGS.redis_url, decode_responses=True, max_connections=20)
    if SETTINGS.redis_url
    else None
)


@asynccontextmanager
async def lifespan_redis():
    if redis_pool is None:
        logger.info("REDIS_URL not set, idempotency keys and audit queue stay in process")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
    except RedisError:
        # Keep serving; idempotent enrolls report Unavailable until Redis is back.
        logger.exception("Redis unreachable at startup")
    else:
        logger.info("Redis ready")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connections closed")
