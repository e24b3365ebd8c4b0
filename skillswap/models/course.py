from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    creator_id: UUID
    skill_id: UUID
    title: str
    description: str
    price_credits: int
    created_at: datetime
    updated_at: datetime
    price_money: int | None = None
    status: str = "draft"  # draft|published
    total_lessons: int = 0
    total_duration: int = 0  # minutes
    rating: float = 0.0
    total_reviews: int = 0

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    @property
    def is_published(self) -> bool:
        return self.status == "published"

    @staticmethod
    def new(
        *,
        creator_id: UUID,
        skill_id: UUID,
        title: str,
        description: str,
        price_credits: int,
        price_money: int | None = None,
    ) -> Course:
        now = datetime.now(UTC)
        return Course(
            id=uuid4(),
            creator_id=creator_id,
            skill_id=skill_id,
            title=title,
            description=description,
            price_credits=price_credits,
            price_money=price_money,
            created_at=now,
            updated_at=now,
        )


@dataclass(frozen=True, slots=True)
class CourseLesson:
    id: UUID
    course_id: UUID
    title: str
    content_type: str  # video|text|quiz|...
    order_index: int
    created_at: datetime
    description: str = ""
    content_url: str | None = None
    duration: int | None = None  # minutes

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        content_type: str,
        order_index: int,
        description: str = "",
        content_url: str | None = None,
        duration: int | None = None,
    ) -> CourseLesson:
        return CourseLesson(
            id=uuid4(),
            course_id=course_id,
            title=title,
            content_type=content_type,
            order_index=order_index,
            created_at=datetime.now(UTC),
            description=description,
            content_url=content_url,
            duration=duration,
        )
