"""Course and lesson lifecycle.

A course is created in ``draft``, collects lessons while it is a draft,
and is published exactly once.  Lessons are frozen from then on.  The
course keeps ``total_lessons`` and ``total_duration`` as counters that
only this module writes; every lesson mutation adjusts them inside the
same transaction, under a per-course lock.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime
from uuid import UUID

from skillswap.core.errors import (
    CourseNotFound,
    Forbidden,
    InsufficientContent,
    InvalidPrice,
    InvalidState,
    LessonNotFound,
    SkillNotFound,
    ValidationError,
)
from skillswap.core.locks import KeyedLock
from skillswap.core.retry import with_storage_retry
from skillswap.models.course import Course, CourseLesson
from skillswap.repos.store import Store
from skillswap.services.audit import AuditEvent, AuditSink, audit_sink

logger = logging.getLogger(__name__)

_course_locks = KeyedLock()

_LESSON_FIELDS = frozenset(
    {"title", "description", "content_type", "content_url", "duration", "order_index"}
)


def _check_lesson_values(values: dict) -> None:
    if "title" in values and not (values["title"] or "").strip():
        raise ValidationError("lesson title must be non-empty")
    if "content_type" in values and not values["content_type"]:
        raise ValidationError("content_type is required")
    duration = values.get("duration")
    if duration is not None and duration < 0:
        raise ValidationError("duration cannot be negative")
    order_index = values.get("order_index")
    if order_index is not None and order_index < 0:
        raise ValidationError("order_index cannot be negative")


class CourseCatalog:
    def __init__(self, store: Store, *, audit: AuditSink | None = None) -> None:
        self._store = store
        self._audit = audit or audit_sink

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_course_with_lessons(
        self, course_id: UUID
    ) -> tuple[Course, list[CourseLesson]]:
        """The course and its lessons ordered by ``order_index``."""

        async def _read() -> tuple[Course, list[CourseLesson]]:
            course = await self._store.courses.get(course_id)
            if course is None:
                raise CourseNotFound()
            return course, await self._store.courses.list_lessons(course_id)

        return await with_storage_retry(_read, name="get_course_with_lessons")

    async def courses_by_creator(self, creator_id: UUID) -> list[Course]:
        return await with_storage_retry(
            lambda: self._store.courses.search(creator_id=creator_id),
            name="courses_by_creator",
        )

    async def search(
        self,
        query: str | None = None,
        *,
        category: str | None = None,
        min_price: int | None = None,
        max_price: int | None = None,
        status: str | None = "published",
        creator_id: UUID | None = None,
    ) -> list[Course]:
        """Filter courses; every given filter must match.

        ``query`` is a case-insensitive substring of title or description.
        ``category`` matches the category of the course's skill.  Pass
        ``status=None`` to search across both states.
        """
        query = (query or "").strip() or None

        async def _read() -> list[Course]:
            courses = await self._store.courses.search(
                query=query, status=status, creator_id=creator_id
            )
            if min_price is not None:
                courses = [c for c in courses if c.price_credits >= min_price]
            if max_price is not None:
                courses = [c for c in courses if c.price_credits <= max_price]
            if category is None:
                return courses

            wanted = category.lower()
            categories: dict[UUID, str] = {}
            result = []
            for c in courses:
                if c.skill_id not in categories:
                    skill = await self._store.skills.get(c.skill_id)
                    categories[c.skill_id] = skill.category.lower() if skill else ""
                if categories[c.skill_id] == wanted:
                    result.append(c)
            return result

        return await with_storage_retry(_read, name="course search")

    # ------------------------------------------------------------------
    # Course lifecycle
    # ------------------------------------------------------------------

    async def create_course(
        self,
        creator_id: UUID,
        *,
        skill_id: UUID,
        title: str,
        description: str = "",
        price_credits: int = 0,
        price_money: int | None = None,
    ) -> Course:
        if price_credits < 0 or (price_money is not None and price_money < 0):
            raise InvalidPrice()
        if not title.strip():
            raise ValidationError("title must be non-empty")

        async def _create() -> Course:
            skill = await self._store.skills.get(skill_id)
            if skill is None:
                raise SkillNotFound()
            if skill.user_id != creator_id:
                logger.warning(
                    "Course creation denied: user=%s does not own skill=%s",
                    creator_id,
                    skill_id,
                )
                raise Forbidden("you can only create courses for your own skills")
            course = Course.new(
                creator_id=creator_id,
                skill_id=skill_id,
                title=title.strip(),
                description=description,
                price_credits=price_credits,
                price_money=price_money,
            )
            async with self._store.transaction():
                await self._store.courses.add(course)
            return course

        course = await with_storage_retry(_create, name="create_course")
        logger.info("Course created id=%s creator=%s", course.id, creator_id)
        return course

    async def publish(self, course_id: UUID, creator_id: UUID) -> Course:
        async def _publish() -> Course:
            async with _course_locks.hold(course_id):
                async with self._store.transaction():
                    course = await self._owned_course(course_id, creator_id)
                    if course.is_published:
                        raise InvalidState("course is already published")
                    if course.total_lessons == 0:
                        raise InsufficientContent()
                    published = replace(
                        course, status="published", updated_at=datetime.now(UTC)
                    )
                    await self._store.courses.update(published)
                    return published

        course = await with_storage_retry(_publish, name="publish")
        logger.info(
            "Course published id=%s lessons=%d", course.id, course.total_lessons
        )
        await self._audit.record(
            AuditEvent(
                action="course.published",
                actor_id=str(creator_id),
                subject_id=str(course_id),
                data={"price_credits": course.price_credits},
            )
        )
        return course

    # ------------------------------------------------------------------
    # Lessons (draft only)
    # ------------------------------------------------------------------

    async def add_lesson(
        self,
        course_id: UUID,
        creator_id: UUID,
        *,
        title: str,
        content_type: str,
        description: str = "",
        content_url: str | None = None,
        duration: int | None = None,
        order_index: int | None = None,
    ) -> CourseLesson:
        _check_lesson_values(
            {
                "title": title,
                "content_type": content_type,
                "duration": duration,
                "order_index": order_index,
            }
        )

        async def _add() -> CourseLesson:
            async with _course_locks.hold(course_id):
                async with self._store.transaction():
                    course = await self._draft_course(course_id, creator_id)
                    index = order_index
                    if index is None:
                        existing = await self._store.courses.list_lessons(course_id)
                        index = max((x.order_index for x in existing), default=-1) + 1
                    lesson = CourseLesson.new(
                        course_id=course_id,
                        title=title.strip(),
                        content_type=content_type,
                        order_index=index,
                        description=description,
                        content_url=content_url,
                        duration=duration,
                    )
                    await self._store.courses.add_lesson(lesson)
                    await self._store.courses.update(
                        replace(
                            course,
                            total_lessons=course.total_lessons + 1,
                            total_duration=course.total_duration + (duration or 0),
                            updated_at=datetime.now(UTC),
                        )
                    )
                    return lesson

        lesson = await with_storage_retry(_add, name="add_lesson")
        logger.info("Lesson added id=%s course=%s", lesson.id, course_id)
        return lesson

    async def update_lesson(
        self, lesson_id: UUID, creator_id: UUID, **updates
    ) -> CourseLesson:
        unknown = set(updates) - _LESSON_FIELDS
        if unknown:
            raise ValidationError(f"unknown lesson fields: {', '.join(sorted(unknown))}")
        for name in ("title", "content_type", "description", "order_index"):
            if name in updates and updates[name] is None:
                raise ValidationError(f"{name} cannot be null")
        _check_lesson_values(updates)

        async def _update() -> CourseLesson:
            lesson = await self._store.courses.get_lesson(lesson_id)
            if lesson is None:
                raise LessonNotFound()
            async with _course_locks.hold(lesson.course_id):
                async with self._store.transaction():
                    course = await self._draft_course(lesson.course_id, creator_id)
                    lesson = await self._current_lesson(lesson_id)
                    updated = replace(lesson, **updates)
                    await self._store.courses.update_lesson(updated)
                    delta = (updated.duration or 0) - (lesson.duration or 0)
                    if delta:
                        await self._store.courses.update(
                            replace(
                                course,
                                total_duration=course.total_duration + delta,
                                updated_at=datetime.now(UTC),
                            )
                        )
                    return updated

        return await with_storage_retry(_update, name="update_lesson")

    async def delete_lesson(self, lesson_id: UUID, creator_id: UUID) -> None:
        async def _delete() -> None:
            lesson = await self._store.courses.get_lesson(lesson_id)
            if lesson is None:
                raise LessonNotFound()
            async with _course_locks.hold(lesson.course_id):
                async with self._store.transaction():
                    course = await self._draft_course(lesson.course_id, creator_id)
                    lesson = await self._current_lesson(lesson_id)
                    if not await self._store.courses.delete_lesson(lesson_id):
                        raise LessonNotFound()
                    await self._store.courses.update(
                        replace(
                            course,
                            total_lessons=course.total_lessons - 1,
                            total_duration=course.total_duration - (lesson.duration or 0),
                            updated_at=datetime.now(UTC),
                        )
                    )

        await with_storage_retry(_delete, name="delete_lesson")
        logger.info("Lesson deleted id=%s", lesson_id)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    async def _owned_course(self, course_id: UUID, creator_id: UUID) -> Course:
        course = await self._store.courses.get_for_update(course_id)
        if course is None:
            raise CourseNotFound()
        if course.creator_id != creator_id:
            logger.warning(
                "Course change denied: user=%s is not creator of course=%s",
                creator_id,
                course_id,
            )
            raise Forbidden("only the course creator can change this course")
        return course

    async def _draft_course(self, course_id: UUID, creator_id: UUID) -> Course:
        course = await self._owned_course(course_id, creator_id)
        if not course.is_draft:
            raise InvalidState("lessons can only be changed while the course is a draft")
        return course

    async def _current_lesson(self, lesson_id: UUID) -> CourseLesson:
        # Re-read under the course lock; the first read only located the course.
        lesson = await self._store.courses.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFound()
        return lesson
