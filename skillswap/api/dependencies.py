"""FastAPI dependencies: the caller's identity and the request's Store.

Route handlers build services over the Store they are handed, so one
request sees one unit of work: the in-memory singleton when no
DATABASE_URL is configured, otherwise a PgStore over a session that
commits when the handler returns and rolls back when it raises.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from skillswap.db.engine import async_session_factory
from skillswap.models.principal import Principal
from skillswap.repos.pg_store import PgStore
from skillswap.repos.store import InMemoryStore, Store
from skillswap.services import token_service
from skillswap.services.analytics import AnalyticsProjector
from skillswap.services.certification import CertificationService
from skillswap.services.course_catalog import CourseCatalog
from skillswap.services.enrollment import EnrollmentEngine
from skillswap.services.ledger import Ledger

logger = logging.getLogger(__name__)

# Tokens come from the platform auth service; tokenUrl is only for the docs UI.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

memory_store = InMemoryStore()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Validate the bearer token and return the caller as a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        user_id = UUID(claims["sub"])
    except (ValueError, TypeError):
        logger.warning("Token rejected: sub is not a user id")
        raise _unauthorized("Invalid token") from None

    return Principal(user_id=user_id)


async def get_store() -> AsyncIterator[Store]:
    if async_session_factory is None:
        yield memory_store
        return

    async with async_session_factory() as session:
        try:
            yield PgStore(session)
            await session.commit()
        except Exception:
            await session.rollback()
            raise


CurrentUser = Annotated[Principal, Depends(require_user)]
StoreDep = Annotated[Store, Depends(get_store)]


def get_ledger(store: StoreDep) -> Ledger:
    return Ledger(store)


def get_catalog(store: StoreDep) -> CourseCatalog:
    return CourseCatalog(store)


def get_certification(store: StoreDep) -> CertificationService:
    return CertificationService(store)


def get_enrollment_engine(store: StoreDep) -> EnrollmentEngine:
    return EnrollmentEngine(store)


def get_analytics(store: StoreDep) -> AnalyticsProjector:
    return AnalyticsProjector(store)
