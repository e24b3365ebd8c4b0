from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal
from uuid import UUID, uuid4

SessionStatus = Literal["scheduled", "in_progress", "completed", "cancelled"]

# Share of a session's price paid to the student for taking part.
PARTICIPATION_RATE_PCT = 20


def participation_credits(credits_amount: int) -> int:
    """floor(20% of the session price), never less than one credit."""
    return max(1, credits_amount * PARTICIPATION_RATE_PCT // 100)


@dataclass(frozen=True, slots=True)
class SkillSession:
    """A one-to-one teaching session.  Owned by the scheduling collaborator.

    The ledger only reads it: once ``status`` is ``completed`` the
    teacher is paid ``credits_amount`` and the student earns
    participation credits.
    """

    id: UUID
    teacher_id: UUID
    student_id: UUID
    skill_id: UUID
    credits_amount: int
    status: str = "scheduled"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @staticmethod
    def new(
        *,
        teacher_id: UUID,
        student_id: UUID,
        skill_id: UUID,
        credits_amount: int,
        status: SessionStatus = "scheduled",
    ) -> SkillSession:
        return SkillSession(
            id=uuid4(),
            teacher_id=teacher_id,
            student_id=student_id,
            skill_id=skill_id,
            credits_amount=credits_amount,
            status=status,
        )
