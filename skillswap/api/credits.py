"""Credit balance, history and purchase endpoints (always for the caller)."""

from __future__ import annotations

import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from skillswap.api.dependencies import CurrentUser, get_ledger
from skillswap.models.ledger import CreditTransaction
from skillswap.services.ledger import Ledger

router = APIRouter(prefix="/v1/credits", tags=["credits"])

LedgerDep = Annotated[Ledger, Depends(get_ledger)]


class BalanceOut(BaseModel):
    user_id: UUID
    credit_balance: int


class TransactionOut(BaseModel):
    id: UUID
    amount: int
    type: str
    description: str | None
    related_id: str | None
    created_at: datetime.datetime


class PurchaseIn(BaseModel):
    amount: int = Field(ge=1, le=10000)
    payment_method_id: str = Field(min_length=1)


def transaction_out(t: CreditTransaction) -> TransactionOut:
    return TransactionOut(
        id=t.id,
        amount=t.amount,
        type=t.type,
        description=t.description,
        related_id=t.related_id,
        created_at=t.created_at,
    )


@router.get("/balance", response_model=BalanceOut)
async def get_balance(principal: CurrentUser, ledger: LedgerDep) -> BalanceOut:
    balance = await ledger.get_balance(principal.user_id)
    return BalanceOut(user_id=principal.user_id, credit_balance=balance)


@router.get("/transactions", response_model=list[TransactionOut])
async def list_transactions(
    principal: CurrentUser,
    ledger: LedgerDep,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> list[TransactionOut]:
    history = await ledger.history(principal.user_id, limit)
    return [transaction_out(t) for t in history]


@router.post(
    "/purchase",
    response_model=TransactionOut,
    status_code=status.HTTP_201_CREATED,
)
async def purchase_credits(
    body: PurchaseIn, principal: CurrentUser, ledger: LedgerDep
) -> TransactionOut:
    txn = await ledger.purchase(principal.user_id, body.amount, body.payment_method_id)
    return transaction_out(txn)


class SessionSettlementOut(BaseModel):
    session_id: UUID
    teacher: TransactionOut
    student: TransactionOut
    already_settled: bool


@router.post("/sessions/{session_id}/settle", response_model=SessionSettlementOut)
async def settle_session(
    session_id: UUID, principal: CurrentUser, ledger: LedgerDep
) -> SessionSettlementOut:
    """Pay out a completed session.  Either participant may call it."""
    result = await ledger.settle_session(session_id, requester_id=principal.user_id)
    return SessionSettlementOut(
        session_id=result.session_id,
        teacher=transaction_out(result.teacher_txn),
        student=transaction_out(result.student_txn),
        already_settled=result.already_settled,
    )
