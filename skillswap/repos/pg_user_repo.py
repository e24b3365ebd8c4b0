"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import UserRow
from skillswap.models.user import User


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: UUID) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def get_for_update(self, user_id: UUID) -> User | None:
        """Read the row under SELECT ... FOR UPDATE until the transaction ends."""
        stmt = (
            select(UserRow)
            .where(UserRow.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_user(row)

    async def add(self, user: User) -> None:
        row = UserRow(
            id=user.id,
            name=user.name,
            credit_balance=user.credit_balance,
            skill_points=user.skill_points,
            total_sessions_taught=user.total_sessions_taught,
            total_sessions_completed=user.total_sessions_completed,
            badges=sorted(user.badges),
        )
        self._session.add(row)
        await self._session.flush()

    async def add_skill_points(self, user_id: UUID, points: int) -> User | None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(skill_points=UserRow.skill_points + points)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(user_id)

    async def record_session(
        self, user_id: UUID, *, taught: bool, points: int
    ) -> User | None:
        counter = (
            UserRow.total_sessions_taught
            if taught
            else UserRow.total_sessions_completed
        )
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(
                {
                    UserRow.skill_points: UserRow.skill_points + points,
                    counter: counter + 1,
                }
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.get(user_id)

    async def add_badge(self, user_id: UUID, badge: str) -> bool:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .where(~UserRow.badges.any(badge))
            .values(badges=func.array_append(UserRow.badges, badge))
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        name=row.name or "",
        credit_balance=row.credit_balance,
        skill_points=row.skill_points,
        total_sessions_taught=row.total_sessions_taught,
        total_sessions_completed=row.total_sessions_completed,
        badges=frozenset(row.badges or ()),
    )
