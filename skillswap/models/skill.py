from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Skill:
    """A skill a user offers to teach.  Owned by the skills collaborator."""

    id: UUID
    user_id: UUID
    title: str
    category: str = ""

    @staticmethod
    def new(*, user_id: UUID, title: str, category: str = "") -> Skill:
        return Skill(id=uuid4(), user_id=user_id, title=title, category=category)
