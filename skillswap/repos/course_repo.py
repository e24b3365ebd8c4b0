from __future__ import annotations

from typing import Protocol
from uuid import UUID

from skillswap.models.course import Course, CourseLesson
from skillswap.repos import unit_of_work as uow


class CourseRepo(Protocol):
    async def get(self, course_id: UUID) -> Course | None: ...
    async def get_for_update(self, course_id: UUID) -> Course | None: ...
    async def add(self, course: Course) -> None: ...
    async def update(self, course: Course) -> None: ...
    async def search(
        self,
        query: str | None = None,
        status: str | None = None,
        creator_id: UUID | None = None,
    ) -> list[Course]: ...
    async def get_lesson(self, lesson_id: UUID) -> CourseLesson | None: ...
    async def add_lesson(self, lesson: CourseLesson) -> None: ...
    async def update_lesson(self, lesson: CourseLesson) -> None: ...
    async def delete_lesson(self, lesson_id: UUID) -> bool: ...
    async def list_lessons(self, course_id: UUID) -> list[CourseLesson]: ...


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._lessons: dict[UUID, CourseLesson] = {}

    async def get(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def get_for_update(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def add(self, course: Course) -> None:
        if course.id in self._courses:
            raise ValueError("course already exists")
        uow.put(self._courses, course.id, course)

    async def update(self, course: Course) -> None:
        if course.id not in self._courses:
            raise KeyError("course not found")
        uow.put(self._courses, course.id, course)

    async def search(
        self,
        query: str | None = None,
        status: str | None = None,
        creator_id: UUID | None = None,
    ) -> list[Course]:
        needle = query.lower() if query else None
        result = []
        for c in self._courses.values():
            if status is not None and c.status != status:
                continue
            if creator_id is not None and c.creator_id != creator_id:
                continue
            if needle and needle not in c.title.lower() and needle not in c.description.lower():
                continue
            result.append(c)
        result.sort(key=lambda c: c.created_at, reverse=True)
        return result

    async def get_lesson(self, lesson_id: UUID) -> CourseLesson | None:
        return self._lessons.get(lesson_id)

    async def add_lesson(self, lesson: CourseLesson) -> None:
        uow.put(self._lessons, lesson.id, lesson)

    async def update_lesson(self, lesson: CourseLesson) -> None:
        if lesson.id not in self._lessons:
            raise KeyError("lesson not found")
        uow.put(self._lessons, lesson.id, lesson)

    async def delete_lesson(self, lesson_id: UUID) -> bool:
        return uow.pop(self._lessons, lesson_id) is not None

    async def list_lessons(self, course_id: UUID) -> list[CourseLesson]:
        lessons = [x for x in self._lessons.values() if x.course_id == course_id]
        lessons.sort(key=lambda x: (x.order_index, x.created_at))
        return lessons
