"""PostgreSQL implementation of SessionRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import SkillSessionRow
from skillswap.models.session import SkillSession


class PgSessionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, session_id: UUID) -> SkillSession | None:
        stmt = select(SkillSessionRow).where(SkillSessionRow.id == session_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_session(row) if row is not None else None

    async def get_for_update(self, session_id: UUID) -> SkillSession | None:
        """Lock the session row so two settlements of it run one at a time."""
        stmt = (
            select(SkillSessionRow)
            .where(SkillSessionRow.id == session_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_session(row) if row is not None else None

    async def add(self, session: SkillSession) -> None:
        self._session.add(
            SkillSessionRow(
                id=session.id,
                teacher_id=session.teacher_id,
                student_id=session.student_id,
                skill_id=session.skill_id,
                credits_amount=session.credits_amount,
                status=session.status,
                created_at=session.created_at,
            )
        )
        await self._session.flush()


def _row_to_session(row: SkillSessionRow) -> SkillSession:
    return SkillSession(
        id=row.id,
        teacher_id=row.teacher_id,
        student_id=row.student_id,
        skill_id=row.skill_id,
        credits_amount=row.credits_amount,
        status=row.status,
        created_at=row.created_at,
    )
