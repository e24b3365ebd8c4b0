from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from skillswap.models.user import User
from skillswap.repos import unit_of_work as uow


class UserRepo(Protocol):
    async def get(self, user_id: UUID) -> User | None: ...
    async def get_for_update(self, user_id: UUID) -> User | None: ...
    async def add(self, user: User) -> None: ...
    async def add_skill_points(self, user_id: UUID, points: int) -> User | None: ...
    async def add_badge(self, user_id: UUID, badge: str) -> bool: ...
    async def record_session(
        self, user_id: UUID, *, taught: bool, points: int
    ) -> User | None: ...


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}

    async def get(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_for_update(self, user_id: UUID) -> User | None:
        # Callers hold the per-user KeyedLock; nothing more to lock here.
        return self._by_id.get(user_id)

    async def add(self, user: User) -> None:
        if user.id in self._by_id:
            raise ValueError("user already exists")
        uow.put(self._by_id, user.id, user)

    async def add_skill_points(self, user_id: UUID, points: int) -> User | None:
        u = self._by_id.get(user_id)
        if u is None:
            return None
        updated = replace(u, skill_points=u.skill_points + points)
        self._by_id[user_id] = updated
        self._undo_adjust(user_id, skill_points=-points)
        return updated

    async def record_session(
        self, user_id: UUID, *, taught: bool, points: int
    ) -> User | None:
        """Count one settled session and add its skill points."""
        u = self._by_id.get(user_id)
        if u is None:
            return None
        counter = "total_sessions_taught" if taught else "total_sessions_completed"
        updated = replace(
            u, skill_points=u.skill_points + points, **{counter: getattr(u, counter) + 1}
        )
        self._by_id[user_id] = updated
        self._undo_adjust(user_id, skill_points=-points, **{counter: -1})
        return updated

    async def add_badge(self, user_id: UUID, badge: str) -> bool:
        """Add-if-absent.  Returns True only when the badge was new."""
        u = self._by_id.get(user_id)
        if u is None or badge in u.badges:
            return False
        self._by_id[user_id] = u.with_badge(badge)

        def _restore() -> None:
            cur = self._by_id.get(user_id)
            if cur is not None:
                self._by_id[user_id] = replace(cur, badges=cur.badges - {badge})

        uow.record_undo(_restore)
        return True

    def _set_balance(self, user_id: UUID, balance: int) -> None:
        # Reserved for InMemoryLedgerRepo.apply.
        u = self._by_id[user_id]
        self._by_id[user_id] = replace(u, credit_balance=balance)
        self._undo_adjust(user_id, credit_balance=u.credit_balance - balance)

    def _undo_adjust(self, user_id: UUID, **deltas: int) -> None:
        # Undo applies the inverse delta to whatever the record holds at
        # rollback time, so writes that other tasks made to the same user
        # in the meantime survive the rollback.
        def _restore() -> None:
            cur = self._by_id.get(user_id)
            if cur is None:
                return
            changes = {name: getattr(cur, name) + d for name, d in deltas.items()}
            self._by_id[user_id] = replace(cur, **changes)

        uow.record_undo(_restore)
