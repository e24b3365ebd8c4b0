"""PostgreSQL implementation of LedgerRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import CreditTransactionRow, UserRow
from skillswap.models.ledger import CreditTransaction


class PgLedgerRepo:
    """Satisfies the LedgerRepo Protocol.

    apply() issues the INSERT and the balance UPDATE in the caller's
    session, so they commit or roll back together with the enclosing
    transaction.  The caller is expected to hold the user row lock
    (UserRepo.get_for_update) when it computed ``new_balance``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def apply(self, transaction: CreditTransaction, new_balance: int) -> None:
        self._session.add(
            CreditTransactionRow(
                id=transaction.id,
                user_id=transaction.user_id,
                amount=transaction.amount,
                type=transaction.type,
                description=transaction.description,
                related_id=transaction.related_id,
                created_at=transaction.created_at,
            )
        )
        stmt = (
            update(UserRow)
            .where(UserRow.id == transaction.user_id)
            .values(credit_balance=new_balance)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("user not found")
        await self._session.flush()

    async def list_by_user(
        self, user_id: UUID, limit: int | None = None
    ) -> list[CreditTransaction]:
        stmt = (
            select(CreditTransactionRow)
            .where(CreditTransactionRow.user_id == user_id)
            .order_by(
                CreditTransactionRow.created_at.desc(),
                CreditTransactionRow.seq.desc(),
            )
        )
        if limit is not None and limit > 0:
            stmt = stmt.limit(limit)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_transaction(r) for r in rows]

    async def list_by_related(self, related_id: str) -> list[CreditTransaction]:
        stmt = (
            select(CreditTransactionRow)
            .where(CreditTransactionRow.related_id == related_id)
            .order_by(CreditTransactionRow.seq)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_transaction(r) for r in rows]

    async def sum_for_user(self, user_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(CreditTransactionRow.amount), 0)).where(
            CreditTransactionRow.user_id == user_id
        )
        return int((await self._session.execute(stmt)).scalar_one())


def _row_to_transaction(row: CreditTransactionRow) -> CreditTransaction:
    return CreditTransaction(
        id=row.id,
        user_id=row.user_id,
        amount=row.amount,
        type=row.type,
        created_at=row.created_at,
        description=row.description,
        related_id=row.related_id,
    )
