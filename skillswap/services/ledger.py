"""Credit ledger: per-user balance plus the append-only transaction log.

The balance on the user record is a denormalized copy of the sum of the
user's transactions.  Two rules keep them equal:

  1. ``credit`` and ``debit`` are the only mutation entry points.  Both
     go through ``LedgerRepo.apply``, which appends the row and writes
     the new balance in one call.  There is no public balance setter.

  2. The read-check-write of a balance is serialised per user.  Inside
     one process a KeyedLock holds other coroutines off between the
     read and the write; across processes the user row is read with
     SELECT ... FOR UPDATE (PgUserRepo.get_for_update).  Without this,
     two debits against a low balance could both pass the funds check
     and overdraw the account.

Session settlement pays out a completed one-to-one session: the teacher
earns the session price and the student earns participation credits.
Both postings carry the session id as ``related_id``; an existing
"earned" row with that id means the session was already paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from skillswap.core.errors import (
    Forbidden,
    InsufficientFunds,
    PaymentFailed,
    SessionNotCompleted,
    SessionNotFound,
    UserNotFound,
    ValidationError,
)
from skillswap.core.locks import KeyedLock
from skillswap.core.metrics import LEDGER_REJECTIONS, LEDGER_TRANSACTIONS
from skillswap.core.retry import with_storage_retry
from skillswap.models.ledger import TRANSACTION_TYPES, CreditTransaction
from skillswap.models.session import SkillSession, participation_credits
from skillswap.repos.store import Store
from skillswap.services.audit import AuditEvent, AuditSink, audit_sink
from skillswap.services.payments import PaymentGateway, payment_gateway

logger = logging.getLogger(__name__)

_user_locks = KeyedLock()
_session_locks = KeyedLock()


@dataclass(frozen=True, slots=True)
class SessionSettlement:
    session_id: UUID
    teacher_txn: CreditTransaction
    student_txn: CreditTransaction
    already_settled: bool = False


def _validate(amount: int, type: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount must be a positive integer")
    if type not in TRANSACTION_TYPES:
        raise ValidationError(
            f"type must be one of {', '.join(TRANSACTION_TYPES)} (got {type!r})"
        )


class Ledger:
    def __init__(
        self,
        store: Store,
        *,
        audit: AuditSink | None = None,
        gateway: PaymentGateway | None = None,
    ) -> None:
        self._store = store
        self._audit = audit or audit_sink
        self._gateway = gateway or payment_gateway

    async def get_balance(self, user_id: UUID) -> int:
        async def _read() -> int:
            user = await self._store.users.get(user_id)
            if user is None:
                raise UserNotFound()
            return user.credit_balance

        return await with_storage_retry(_read, name="get_balance")

    async def credit(
        self,
        user_id: UUID,
        amount: int,
        type: str,
        description: str | None = None,
        related_id: str | None = None,
    ) -> CreditTransaction:
        """Append ``+amount`` and raise the balance by the same amount."""
        return await with_storage_retry(
            lambda: self.credit_within(user_id, amount, type, description, related_id),
            name="ledger credit",
        )

    async def debit(
        self,
        user_id: UUID,
        amount: int,
        type: str,
        description: str | None = None,
        related_id: str | None = None,
    ) -> CreditTransaction:
        """Append ``-amount`` and lower the balance by the same amount.

        Raises InsufficientFunds, leaving the balance untouched, when the
        balance is below ``amount``.
        """
        return await with_storage_retry(
            lambda: self.debit_within(user_id, amount, type, description, related_id),
            name="ledger debit",
        )

    async def credit_within(
        self,
        user_id: UUID,
        amount: int,
        type: str,
        description: str | None = None,
        related_id: str | None = None,
    ) -> CreditTransaction:
        """``credit`` without the retry, for callers that already retry.

        Joins the caller's open Store transaction, if any.
        """
        _validate(amount, type)
        return await self._post(user_id, amount, type, description, related_id)

    async def debit_within(
        self,
        user_id: UUID,
        amount: int,
        type: str,
        description: str | None = None,
        related_id: str | None = None,
    ) -> CreditTransaction:
        _validate(amount, type)
        return await self._post(user_id, -amount, type, description, related_id)

    async def history(
        self, user_id: UUID, limit: int | None = None
    ) -> list[CreditTransaction]:
        """Transactions for ``user_id``, newest first."""
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive")

        async def _read() -> list[CreditTransaction]:
            if await self._store.users.get(user_id) is None:
                raise UserNotFound()
            return await self._store.ledger.list_by_user(user_id, limit)

        return await with_storage_retry(_read, name="ledger history")

    async def purchase(
        self, user_id: UUID, amount: int, payment_method_id: str
    ) -> CreditTransaction:
        """Charge ``payment_method_id`` and credit the purchased amount."""
        _validate(amount, "purchased")
        if not payment_method_id:
            raise ValidationError("payment_method_id is required")
        if await self._store.users.get(user_id) is None:
            raise UserNotFound()

        try:
            charge_ref = await self._gateway.charge(user_id, amount, payment_method_id)
        except PaymentFailed:
            LEDGER_REJECTIONS.labels(reason="payment_failed").inc()
            raise
        logger.info(
            "Payment captured user=%s amount=%d charge=%s", user_id, amount, charge_ref
        )
        return await self.credit(
            user_id,
            amount,
            "purchased",
            description=f"Purchased {amount} credits",
            related_id=payment_method_id,
        )

    async def settle_session(
        self, session_id: UUID, *, requester_id: UUID | None = None
    ) -> SessionSettlement:
        """Pay out a completed session.

        The teacher earns ``credits_amount`` and gets one more session
        taught; the student earns ``participation_credits(credits_amount)``
        and one more session completed.  Skill points follow the credits.
        Calling it again for a settled session returns the original
        postings and changes nothing.

        When ``requester_id`` is given it must be the teacher or the student.
        """
        async with _session_locks.hold(session_id):
            settlement = await with_storage_retry(
                lambda: self._settle_session(session_id, requester_id),
                name="settle session",
            )

        if settlement.already_settled:
            logger.info("Session already settled id=%s", session_id)
            return settlement
        logger.info(
            "Session settled id=%s teacher=%s earned=%d student=%s earned=%d",
            session_id,
            settlement.teacher_txn.user_id,
            settlement.teacher_txn.amount,
            settlement.student_txn.user_id,
            settlement.student_txn.amount,
        )
        await self._audit.record(
            AuditEvent(
                action="session.settled",
                actor_id=str(settlement.teacher_txn.user_id),
                subject_id=str(session_id),
                data={
                    "teacher_credits": settlement.teacher_txn.amount,
                    "student_id": str(settlement.student_txn.user_id),
                    "student_credits": settlement.student_txn.amount,
                },
            )
        )
        return settlement

    async def _settle_session(
        self, session_id: UUID, requester_id: UUID | None
    ) -> SessionSettlement:
        related_id = str(session_id)
        async with self._store.transaction():
            session = await self._store.sessions.get_for_update(session_id)
            if session is None:
                raise SessionNotFound()
            if requester_id is not None and requester_id not in (
                session.teacher_id,
                session.student_id,
            ):
                raise Forbidden()
            if not session.is_completed:
                raise SessionNotCompleted()

            paid = [
                t
                for t in await self._store.ledger.list_by_related(related_id)
                if t.type == "earned"
            ]
            if paid:
                return _existing_settlement(session, paid)

            amount = session.credits_amount
            participation = participation_credits(amount)
            teacher_txn = await self.credit_within(
                session.teacher_id,
                amount,
                "earned",
                description="Taught a session",
                related_id=related_id,
            )
            student_txn = await self.credit_within(
                session.student_id,
                participation,
                "earned",
                description="Completed a session",
                related_id=related_id,
            )
            if await self._store.users.record_session(
                session.teacher_id, taught=True, points=amount
            ) is None:
                raise UserNotFound()
            if await self._store.users.record_session(
                session.student_id, taught=False, points=participation
            ) is None:
                raise UserNotFound()
            return SessionSettlement(session_id, teacher_txn, student_txn)

    async def is_consistent(self, user_id: UUID) -> bool:
        """True when the stored balance equals the sum of the user's log."""
        user = await self._store.users.get(user_id)
        if user is None:
            raise UserNotFound()
        total = await self._store.ledger.sum_for_user(user_id)
        if total != user.credit_balance:
            logger.error(
                "Ledger drift user=%s balance=%d sum=%d",
                user_id,
                user.credit_balance,
                total,
            )
            return False
        return True

    async def _post(
        self,
        user_id: UUID,
        signed_amount: int,
        type: str,
        description: str | None,
        related_id: str | None,
    ) -> CreditTransaction:
        async with _user_locks.hold(user_id):
            async with self._store.transaction():
                user = await self._store.users.get_for_update(user_id)
                if user is None:
                    raise UserNotFound()
                new_balance = user.credit_balance + signed_amount
                if new_balance < 0:
                    LEDGER_REJECTIONS.labels(reason="insufficient_funds").inc()
                    logger.warning(
                        "Debit rejected user=%s balance=%d amount=%d",
                        user_id,
                        user.credit_balance,
                        -signed_amount,
                    )
                    raise InsufficientFunds()
                txn = CreditTransaction.new(
                    user_id=user_id,
                    amount=signed_amount,
                    type=type,
                    description=description,
                    related_id=related_id,
                )
                await self._store.ledger.apply(txn, new_balance)

        direction = "credit" if signed_amount > 0 else "debit"
        LEDGER_TRANSACTIONS.labels(type=type, direction=direction).inc()
        logger.info(
            "Ledger %s user=%s amount=%d type=%s balance=%d",
            direction,
            user_id,
            signed_amount,
            type,
            new_balance,
        )
        await self._audit.record(
            AuditEvent(
                action="credit.credited" if signed_amount > 0 else "credit.debited",
                actor_id=str(user_id),
                subject_id=str(txn.id),
                data={
                    "amount": signed_amount,
                    "type": type,
                    "related_id": related_id,
                    "balance": new_balance,
                },
            )
        )
        return txn


def _existing_settlement(
    session: SkillSession, paid: list[CreditTransaction]
) -> SessionSettlement:
    teacher_txn = next(t for t in paid if t.user_id == session.teacher_id)
    student_txn = next(t for t in paid if t.user_id == session.student_id)
    return SessionSettlement(session.id, teacher_txn, student_txn, already_settled=True)
