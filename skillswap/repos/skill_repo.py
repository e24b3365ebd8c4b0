from __future__ import annotations

from typing import Protocol
from uuid import UUID

from skillswap.models.skill import Skill
from skillswap.repos import unit_of_work as uow


class SkillRepo(Protocol):
    async def get(self, skill_id: UUID) -> Skill | None: ...
    async def add(self, skill: Skill) -> None: ...


class InMemorySkillRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Skill] = {}

    async def get(self, skill_id: UUID) -> Skill | None:
        return self._by_id.get(skill_id)

    async def add(self, skill: Skill) -> None:
        uow.put(self._by_id, skill.id, skill)
