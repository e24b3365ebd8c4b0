from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """The caller of an API request, taken from a verified bearer token.

    ``user_id`` is the token's ``sub``.  Every ownership check (course
    creator, enrolled student) compares against it.
    """

    user_id: UUID
