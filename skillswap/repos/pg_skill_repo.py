"""PostgreSQL implementation of SkillRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import SkillRow
from skillswap.models.skill import Skill


class PgSkillRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, skill_id: UUID) -> Skill | None:
        stmt = select(SkillRow).where(SkillRow.id == skill_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return Skill(id=row.id, user_id=row.user_id, title=row.title, category=row.category)

    async def add(self, skill: Skill) -> None:
        self._session.add(
            SkillRow(
                id=skill.id,
                user_id=skill.user_id,
                title=skill.title,
                category=skill.category,
            )
        )
        await self._session.flush()
