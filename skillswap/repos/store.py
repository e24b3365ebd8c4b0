"""Store: the repositories one unit of work reads and writes.

Services never talk to a single repo in isolation when they mutate
several records; they open ``store.transaction()`` so that, for
example, a student debit, a creator credit and a new enrollment are
committed together or not at all.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

from skillswap.repos.certificate_repo import CertificateRepo, InMemoryCertificateRepo
from skillswap.repos.course_repo import CourseRepo, InMemoryCourseRepo
from skillswap.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from skillswap.repos.ledger_repo import InMemoryLedgerRepo, LedgerRepo
from skillswap.repos.session_repo import InMemorySessionRepo, SessionRepo
from skillswap.repos.skill_repo import InMemorySkillRepo, SkillRepo
from skillswap.repos.unit_of_work import undo_scope
from skillswap.repos.user_repo import InMemoryUserRepo, UserRepo


class Store(Protocol):
    users: UserRepo
    skills: SkillRepo
    ledger: LedgerRepo
    sessions: SessionRepo
    courses: CourseRepo
    enrollments: EnrollmentRepo
    certificates: CertificateRepo

    def transaction(self) -> AbstractAsyncContextManager[None]: ...


class InMemoryStore:
    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        """Drop every record.  The test suite calls this between tests."""
        self.users = InMemoryUserRepo()
        self.skills = InMemorySkillRepo()
        self.ledger = InMemoryLedgerRepo(self.users)
        self.sessions = InMemorySessionRepo()
        self.courses = InMemoryCourseRepo()
        self.enrollments = InMemoryEnrollmentRepo()
        self.certificates = InMemoryCertificateRepo()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with undo_scope():
            yield
