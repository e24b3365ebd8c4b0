from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class CourseEnrollment:
    """One user's registration in one course.

    ``progress`` is derived from LessonProgress rows and never decreases;
    ``completed_at`` is set once, the first time progress reaches 100.
    """

    id: UUID
    course_id: UUID
    user_id: UUID
    created_at: datetime
    progress: int = 0
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.progress >= 100

    @staticmethod
    def new(*, course_id: UUID, user_id: UUID) -> CourseEnrollment:
        return CourseEnrollment(
            id=uuid4(),
            course_id=course_id,
            user_id=user_id,
            created_at=datetime.now(UTC),
        )


@dataclass(frozen=True, slots=True)
class LessonProgress:
    id: UUID
    enrollment_id: UUID
    lesson_id: UUID
    created_at: datetime
    updated_at: datetime
    completed: bool = False
    completed_at: datetime | None = None
    time_spent: int = 0  # minutes, accumulated across reports

    @staticmethod
    def new(*, enrollment_id: UUID, lesson_id: UUID) -> LessonProgress:
        now = datetime.now(UTC)
        return LessonProgress(
            id=uuid4(),
            enrollment_id=enrollment_id,
            lesson_id=lesson_id,
            created_at=now,
            updated_at=now,
        )
