"""Postgres connectivity: declarative base, async engine, session factory.

``engine`` and ``async_session_factory`` are None when DATABASE_URL is
unset.  In that mode get_store in api/dependencies.py hands out the
process-wide InMemoryStore instead of a PgStore bound to a session.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from skillswap.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _build_engine(url: str) -> AsyncEngine:
    # Settlement holds row locks for the whole enroll, keep the pool modest.
    return create_async_engine(
        url,
        echo=SETTINGS.is_dev,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


engine: AsyncEngine | None = _build_engine(SETTINGS.database_url) if SETTINGS.database_url else None
async_session_factory: async_sessionmaker[AsyncSession] | None = (
    async_sessionmaker(engine, expire_on_commit=False) if engine is not None else None
)


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("DATABASE_URL not set, serving from the in-memory store")
        yield
        return

    logger.info("Using database %s", engine.url.render_as_string(hide_password=True))
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database connections closed")
