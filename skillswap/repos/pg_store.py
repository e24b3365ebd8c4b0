"""PostgreSQL-backed Store over one request-scoped AsyncSession."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.repos.pg_certificate_repo import PgCertificateRepo
from skillswap.repos.pg_course_repo import PgCourseRepo
from skillswap.repos.pg_enrollment_repo import PgEnrollmentRepo
from skillswap.repos.pg_ledger_repo import PgLedgerRepo
from skillswap.repos.pg_session_repo import PgSessionRepo
from skillswap.repos.pg_skill_repo import PgSkillRepo
from skillswap.repos.pg_user_repo import PgUserRepo


class PgStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.users = PgUserRepo(session)
        self.skills = PgSkillRepo(session)
        self.ledger = PgLedgerRepo(session)
        self.sessions = PgSessionRepo(session)
        self.courses = PgCourseRepo(session)
        self.enrollments = PgEnrollmentRepo(session)
        self.certificates = PgCertificateRepo(session)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """SAVEPOINT scope.  The outer request session commits at the end."""
        async with self._session.begin_nested():
            yield
