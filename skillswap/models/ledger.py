from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal
from uuid import UUID, uuid4

TransactionType = Literal["earned", "spent", "purchased"]
TRANSACTION_TYPES: tuple[str, ...] = ("earned", "spent", "purchased")


@dataclass(frozen=True, slots=True)
class CreditTransaction:
    """Append-only ledger row.  Positive amount = credit, negative = debit."""

    id: UUID
    user_id: UUID
    amount: int
    type: str  # earned|spent|purchased
    created_at: datetime
    description: str | None = None
    related_id: str | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        amount: int,
        type: str,
        description: str | None = None,
        related_id: str | None = None,
    ) -> CreditTransaction:
        return CreditTransaction(
            id=uuid4(),
            user_id=user_id,
            amount=amount,
            type=type,
            created_at=datetime.now(UTC),
            description=description,
            related_id=related_id,
        )
