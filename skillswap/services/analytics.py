"""Read-only creator reporting over enrollments and lesson progress.

Nothing here writes.  Revenue uses ``creator_share`` from the
enrollment module so the reported figure always matches what
settlement actually credited per enrollment.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from uuid import UUID

from skillswap.core.errors import CourseNotFound, Forbidden
from skillswap.core.retry import with_storage_retry
from skillswap.models.course import Course
from skillswap.repos.store import Store
from skillswap.services.enrollment import creator_share


@dataclass(frozen=True, slots=True)
class MonthlyEnrollments:
    month: str  # YYYY-MM
    count: int


@dataclass(frozen=True, slots=True)
class LessonCompletion:
    lesson_id: UUID
    title: str
    completion_rate: float  # percent of enrollments


@dataclass(frozen=True, slots=True)
class CourseAnalytics:
    course_id: UUID
    title: str
    total_enrollments: int
    completion_rate: float
    average_progress: float
    average_rating: float
    total_revenue: int
    enrollments_by_month: list[MonthlyEnrollments] = field(default_factory=list)
    per_lesson_completion_rate: list[LessonCompletion] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CreatorAnalytics:
    creator_id: UUID
    total_revenue: int
    total_students: int
    average_rating: float
    courses: list[CourseAnalytics] = field(default_factory=list)


class AnalyticsProjector:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def course_analytics(
        self, course_id: UUID, requester_id: UUID
    ) -> CourseAnalytics:
        async def _read() -> CourseAnalytics:
            course = await self._store.courses.get(course_id)
            if course is None:
                raise CourseNotFound()
            if course.creator_id != requester_id:
                raise Forbidden("only the course creator can view analytics")
            return await self._project(course)

        return await with_storage_retry(_read, name="course_analytics")

    async def creator_analytics(self, creator_id: UUID) -> CreatorAnalytics:
        async def _read() -> CreatorAnalytics:
            courses = await self._store.courses.search(creator_id=creator_id)
            per_course = [await self._project(c) for c in courses]
            average_rating = (
                sum(c.rating for c in courses) / len(courses) if courses else 0.0
            )
            return CreatorAnalytics(
                creator_id=creator_id,
                total_revenue=sum(a.total_revenue for a in per_course),
                total_students=sum(a.total_enrollments for a in per_course),
                average_rating=average_rating,
                courses=per_course,
            )

        return await with_storage_retry(_read, name="creator_analytics")

    async def _project(self, course: Course) -> CourseAnalytics:
        enrollments = await self._store.enrollments.list_by_course(course.id)
        lessons = await self._store.courses.list_lessons(course.id)
        total = len(enrollments)

        completed_by_lesson: Counter[UUID] = Counter()
        for e in enrollments:
            for p in await self._store.enrollments.list_progress(e.id):
                if p.completed:
                    completed_by_lesson[p.lesson_id] += 1

        months = Counter(e.created_at.strftime("%Y-%m") for e in enrollments)
        per_lesson = [
            LessonCompletion(
                lesson_id=x.id,
                title=x.title,
                completion_rate=(completed_by_lesson[x.id] / total * 100) if total else 0.0,
            )
            for x in lessons
        ]
        # Stable sort keeps lesson order among equal rates.
        per_lesson.sort(key=lambda lc: lc.completion_rate, reverse=True)

        completed = sum(1 for e in enrollments if e.progress >= 100)
        return CourseAnalytics(
            course_id=course.id,
            title=course.title,
            total_enrollments=total,
            completion_rate=(completed / total * 100) if total else 0.0,
            average_progress=(sum(e.progress for e in enrollments) / total) if total else 0.0,
            average_rating=course.rating,
            total_revenue=total * creator_share(course.price_credits),
            enrollments_by_month=[
                MonthlyEnrollments(month=m, count=n) for m, n in sorted(months.items())
            ],
            per_lesson_completion_rate=per_lesson,
        )
