from __future__ import annotations

from typing import Protocol
from uuid import UUID

from skillswap.models.enrollment import CourseEnrollment, LessonProgress
from skillswap.repos import unit_of_work as uow


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> CourseEnrollment | None: ...
    async def get_for_update(self, enrollment_id: UUID) -> CourseEnrollment | None: ...
    async def get_by_user_and_course(
        self, user_id: UUID, course_id: UUID
    ) -> CourseEnrollment | None: ...
    async def add(self, enrollment: CourseEnrollment) -> None: ...
    async def update(self, enrollment: CourseEnrollment) -> None: ...
    async def list_by_user(self, user_id: UUID) -> list[CourseEnrollment]: ...
    async def list_by_course(self, course_id: UUID) -> list[CourseEnrollment]: ...
    async def get_progress(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None: ...
    async def save_progress(self, progress: LessonProgress) -> None: ...
    async def list_progress(self, enrollment_id: UUID) -> list[LessonProgress]: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, CourseEnrollment] = {}
        self._by_pair: dict[tuple[UUID, UUID], UUID] = {}
        self._progress: dict[tuple[UUID, UUID], LessonProgress] = {}

    async def get(self, enrollment_id: UUID) -> CourseEnrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_for_update(self, enrollment_id: UUID) -> CourseEnrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_by_user_and_course(
        self, user_id: UUID, course_id: UUID
    ) -> CourseEnrollment | None:
        eid = self._by_pair.get((user_id, course_id))
        return self._by_id.get(eid) if eid is not None else None

    async def add(self, enrollment: CourseEnrollment) -> None:
        pair = (enrollment.user_id, enrollment.course_id)
        if pair in self._by_pair:
            raise ValueError("enrollment already exists")
        uow.put(self._by_id, enrollment.id, enrollment)
        uow.put(self._by_pair, pair, enrollment.id)

    async def update(self, enrollment: CourseEnrollment) -> None:
        if enrollment.id not in self._by_id:
            raise KeyError("enrollment not found")
        uow.put(self._by_id, enrollment.id, enrollment)

    async def list_by_user(self, user_id: UUID) -> list[CourseEnrollment]:
        return sorted(
            (e for e in self._by_id.values() if e.user_id == user_id),
            key=lambda e: e.created_at,
        )

    async def list_by_course(self, course_id: UUID) -> list[CourseEnrollment]:
        return sorted(
            (e for e in self._by_id.values() if e.course_id == course_id),
            key=lambda e: e.created_at,
        )

    async def get_progress(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        return self._progress.get((enrollment_id, lesson_id))

    async def save_progress(self, progress: LessonProgress) -> None:
        """Insert or replace the row for (enrollment_id, lesson_id)."""
        uow.put(self._progress, (progress.enrollment_id, progress.lesson_id), progress)

    async def list_progress(self, enrollment_id: UUID) -> list[LessonProgress]:
        return [p for (eid, _), p in self._progress.items() if eid == enrollment_id]
