from __future__ import annotations

from typing import Protocol
from uuid import UUID

from skillswap.models.session import SkillSession
from skillswap.repos import unit_of_work as uow


class SessionRepo(Protocol):
    async def get(self, session_id: UUID) -> SkillSession | None: ...
    async def get_for_update(self, session_id: UUID) -> SkillSession | None: ...
    async def add(self, session: SkillSession) -> None: ...


class InMemorySessionRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, SkillSession] = {}

    async def get(self, session_id: UUID) -> SkillSession | None:
        return self._by_id.get(session_id)

    async def get_for_update(self, session_id: UUID) -> SkillSession | None:
        # Ledger.settle_session holds the per-session KeyedLock.
        return self._by_id.get(session_id)

    async def add(self, session: SkillSession) -> None:
        uow.put(self._by_id, session.id, session)
