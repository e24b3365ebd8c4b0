"""PostgreSQL implementation of CourseRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import CourseLessonRow, CourseRow
from skillswap.models.course import Course, CourseLesson


class PgCourseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, course_id: UUID) -> Course | None:
        stmt = select(CourseRow).where(CourseRow.id == course_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_course(row)

    async def get_for_update(self, course_id: UUID) -> Course | None:
        stmt = (
            select(CourseRow)
            .where(CourseRow.id == course_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_course(row)

    async def add(self, course: Course) -> None:
        self._session.add(CourseRow(**_course_values(course)))
        await self._session.flush()

    async def update(self, course: Course) -> None:
        values = _course_values(course)
        values.pop("id")
        stmt = update(CourseRow).where(CourseRow.id == course.id).values(**values)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("course not found")

    async def search(
        self,
        query: str | None = None,
        status: str | None = None,
        creator_id: UUID | None = None,
    ) -> list[Course]:
        stmt = select(CourseRow)
        if status is not None:
            stmt = stmt.where(CourseRow.status == status)
        if creator_id is not None:
            stmt = stmt.where(CourseRow.creator_id == creator_id)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(
                or_(CourseRow.title.ilike(pattern), CourseRow.description.ilike(pattern))
            )
        stmt = stmt.order_by(CourseRow.created_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def get_lesson(self, lesson_id: UUID) -> CourseLesson | None:
        stmt = select(CourseLessonRow).where(CourseLessonRow.id == lesson_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_lesson(row)

    async def add_lesson(self, lesson: CourseLesson) -> None:
        self._session.add(CourseLessonRow(**_lesson_values(lesson)))
        await self._session.flush()

    async def update_lesson(self, lesson: CourseLesson) -> None:
        values = _lesson_values(lesson)
        values.pop("id")
        stmt = (
            update(CourseLessonRow)
            .where(CourseLessonRow.id == lesson.id)
            .values(**values)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("lesson not found")

    async def delete_lesson(self, lesson_id: UUID) -> bool:
        stmt = delete(CourseLessonRow).where(CourseLessonRow.id == lesson_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_lessons(self, course_id: UUID) -> list[CourseLesson]:
        stmt = (
            select(CourseLessonRow)
            .where(CourseLessonRow.course_id == course_id)
            .order_by(CourseLessonRow.order_index, CourseLessonRow.created_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_lesson(r) for r in rows]


def _course_values(course: Course) -> dict:
    return {
        "id": course.id,
        "creator_id": course.creator_id,
        "skill_id": course.skill_id,
        "title": course.title,
        "description": course.description,
        "price_credits": course.price_credits,
        "price_money": course.price_money,
        "status": course.status,
        "total_lessons": course.total_lessons,
        "total_duration": course.total_duration,
        "rating": course.rating,
        "total_reviews": course.total_reviews,
        "created_at": course.created_at,
        "updated_at": course.updated_at,
    }


def _lesson_values(lesson: CourseLesson) -> dict:
    return {
        "id": lesson.id,
        "course_id": lesson.course_id,
        "title": lesson.title,
        "description": lesson.description,
        "content_type": lesson.content_type,
        "content_url": lesson.content_url,
        "duration": lesson.duration,
        "order_index": lesson.order_index,
        "created_at": lesson.created_at,
    }


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        creator_id=row.creator_id,
        skill_id=row.skill_id,
        title=row.title,
        description=row.description,
        price_credits=row.price_credits,
        price_money=row.price_money,
        status=row.status,
        total_lessons=row.total_lessons,
        total_duration=row.total_duration,
        rating=row.rating,
        total_reviews=row.total_reviews,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_lesson(row: CourseLessonRow) -> CourseLesson:
    return CourseLesson(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        description=row.description,
        content_type=row.content_type,
        content_url=row.content_url,
        duration=row.duration,
        order_index=row.order_index,
        created_at=row.created_at,
    )
