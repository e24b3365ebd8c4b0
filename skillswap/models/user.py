from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class User:
    """The slice of a user record the credit engine reads and writes.

    ``credit_balance`` is denormalized from the ledger and only changes
    through LedgerRepo.apply.  ``badges`` is a set so awarding one is an
    add-if-absent union.
    """

    id: UUID
    name: str = ""
    credit_balance: int = 0
    skill_points: int = 0
    total_sessions_taught: int = 0
    total_sessions_completed: int = 0
    badges: frozenset[str] = frozenset()

    @staticmethod
    def new(*, name: str = "") -> User:
        return User(id=uuid4(), name=name)

    def with_badge(self, badge: str) -> User:
        if badge in self.badges:
            return self
        return replace(self, badges=self.badges | {badge})
