from __future__ import annotations

from typing import Protocol
from uuid import UUID

from skillswap.models.ledger import CreditTransaction
from skillswap.repos import unit_of_work as uow
from skillswap.repos.user_repo import InMemoryUserRepo


class LedgerRepo(Protocol):
    async def apply(self, transaction: CreditTransaction, new_balance: int) -> None:
        """Append ``transaction`` and set the owner's balance in one write."""
        ...

    async def list_by_user(
        self, user_id: UUID, limit: int | None = None
    ) -> list[CreditTransaction]: ...

    async def list_by_related(self, related_id: str) -> list[CreditTransaction]: ...

    async def sum_for_user(self, user_id: UUID) -> int: ...


class InMemoryLedgerRepo:
    """Transaction log backed by a list; balances live on the user repo.

    apply() runs without awaiting between the append and the balance
    update, so no other coroutine can observe one without the other.
    """

    def __init__(self, users: InMemoryUserRepo) -> None:
        self._users = users
        self._rows: list[CreditTransaction] = []

    async def apply(self, transaction: CreditTransaction, new_balance: int) -> None:
        if transaction.user_id not in self._users._by_id:
            raise KeyError("user not found")
        uow.append(self._rows, transaction)
        self._users._set_balance(transaction.user_id, new_balance)

    async def list_by_user(
        self, user_id: UUID, limit: int | None = None
    ) -> list[CreditTransaction]:
        # Insertion order breaks created_at ties between same-instant rows.
        rows = [
            (i, t) for i, t in enumerate(self._rows) if t.user_id == user_id
        ]
        rows.sort(key=lambda it: (it[1].created_at, it[0]), reverse=True)
        result = [t for _, t in rows]
        if limit is not None and limit > 0:
            return result[:limit]
        return result

    async def sum_for_user(self, user_id: UUID) -> int:
        return sum(t.amount for t in self._rows if t.user_id == user_id)

    async def list_by_related(self, related_id: str) -> list[CreditTransaction]:
        return [t for t in self._rows if t.related_id == related_id]
