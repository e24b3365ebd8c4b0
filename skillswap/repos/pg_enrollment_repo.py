"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import CourseEnrollmentRow, LessonProgressRow
from skillswap.models.enrollment import CourseEnrollment, LessonProgress


class PgEnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, enrollment_id: UUID) -> CourseEnrollment | None:
        stmt = select(CourseEnrollmentRow).where(CourseEnrollmentRow.id == enrollment_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def get_for_update(self, enrollment_id: UUID) -> CourseEnrollment | None:
        stmt = (
            select(CourseEnrollmentRow)
            .where(CourseEnrollmentRow.id == enrollment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def get_by_user_and_course(
        self, user_id: UUID, course_id: UUID
    ) -> CourseEnrollment | None:
        stmt = select(CourseEnrollmentRow).where(
            CourseEnrollmentRow.user_id == user_id,
            CourseEnrollmentRow.course_id == course_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_enrollment(row)

    async def add(self, enrollment: CourseEnrollment) -> None:
        self._session.add(
            CourseEnrollmentRow(
                id=enrollment.id,
                course_id=enrollment.course_id,
                user_id=enrollment.user_id,
                progress=enrollment.progress,
                completed_at=enrollment.completed_at,
                created_at=enrollment.created_at,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError:
            # (user_id, course_id) unique: another process enrolled first
            raise ValueError("enrollment already exists") from None

    async def update(self, enrollment: CourseEnrollment) -> None:
        stmt = (
            update(CourseEnrollmentRow)
            .where(CourseEnrollmentRow.id == enrollment.id)
            .values(progress=enrollment.progress, completed_at=enrollment.completed_at)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("enrollment not found")

    async def list_by_user(self, user_id: UUID) -> list[CourseEnrollment]:
        stmt = (
            select(CourseEnrollmentRow)
            .where(CourseEnrollmentRow.user_id == user_id)
            .order_by(CourseEnrollmentRow.created_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def list_by_course(self, course_id: UUID) -> list[CourseEnrollment]:
        stmt = (
            select(CourseEnrollmentRow)
            .where(CourseEnrollmentRow.course_id == course_id)
            .order_by(CourseEnrollmentRow.created_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def get_progress(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.enrollment_id == enrollment_id,
            LessonProgressRow.lesson_id == lesson_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_progress(row)

    async def save_progress(self, progress: LessonProgress) -> None:
        values = {
            "id": progress.id,
            "enrollment_id": progress.enrollment_id,
            "lesson_id": progress.lesson_id,
            "completed": progress.completed,
            "completed_at": progress.completed_at,
            "time_spent": progress.time_spent,
            "created_at": progress.created_at,
            "updated_at": progress.updated_at,
        }
        stmt = insert(LessonProgressRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["enrollment_id", "lesson_id"],
            set_={
                "completed": stmt.excluded.completed,
                "completed_at": stmt.excluded.completed_at,
                "time_spent": stmt.excluded.time_spent,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self._session.execute(stmt)

    async def list_progress(self, enrollment_id: UUID) -> list[LessonProgress]:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.enrollment_id == enrollment_id
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_progress(r) for r in rows]


def _row_to_enrollment(row: CourseEnrollmentRow) -> CourseEnrollment:
    return CourseEnrollment(
        id=row.id,
        course_id=row.course_id,
        user_id=row.user_id,
        progress=row.progress,
        completed_at=row.completed_at,
        created_at=row.created_at,
    )


def _row_to_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        id=row.id,
        enrollment_id=row.enrollment_id,
        lesson_id=row.lesson_id,
        completed=row.completed,
        completed_at=row.completed_at,
        time_spent=row.time_spent,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
