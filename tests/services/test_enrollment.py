"""Enrollment settlement and lesson progress tests.

Covers the worked examples end to end (enroll, complete, re-enroll,
insufficient funds, self-enrollment) plus the invariants around them:
one enrollment per (user, course), settlement all-or-nothing, progress
never decreasing, and the completion trigger firing exactly once.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest

from skillswap.core.config import SETTINGS
from skillswap.core.errors import (
    AlreadyEnrolled,
    CourseNotFound,
    EnrollmentNotFound,
    Forbidden,
    IdempotencyConflict,
    InsufficientFunds,
    LessonNotFound,
    LessonNotInCourse,
    NotAvailable,
    NotImplementedPayment,
    SelfEnrollmentNotAllowed,
    TransientStorageError,
    Unavailable,
    ValidationError,
)
from skillswap.models.course import CourseLesson
from skillswap.repos.store import InMemoryStore
from skillswap.services.enrollment import (
    EnrollmentEngine,
    completion_badge,
    creator_share,
    skill_points_for,
)
from skillswap.services.idempotency import InMemoryIdempotencyStore
from skillswap.services.ledger import Ledger
from tests.conftest import make_course, make_user


class _CountingLedger(Ledger):
    """Ledger that records every mutation it is asked to make."""

    def __init__(self, store) -> None:
        super().__init__(store)
        self.calls: list[tuple[str, int]] = []

    async def credit_within(self, user_id, amount, type, description=None, related_id=None):
        self.calls.append(("credit", amount))
        return await super().credit_within(user_id, amount, type, description, related_id)

    async def debit_within(self, user_id, amount, type, description=None, related_id=None):
        self.calls.append(("debit", amount))
        return await super().debit_within(user_id, amount, type, description, related_id)


class _FailingCreditLedger(Ledger):
    """Debits work; crediting the creator blows up mid-settlement."""

    async def credit_within(self, user_id, amount, type, description=None, related_id=None):
        raise RuntimeError("creator credit failed")


async def _setup(store: InMemoryStore, *, balance: int = 100, **course_kwargs):
    creator = await make_user(store, name="creator")
    student = await make_user(store, name="student", balance=balance)
    course, lessons = await make_course(store, creator.id, **course_kwargs)
    return creator, student, course, lessons


async def _balance(store: InMemoryStore, user_id) -> int:
    return (await store.users.get(user_id)).credit_balance


# ---- helpers ----


def test_creator_share_floors() -> None:
    assert creator_share(50) == 40
    assert creator_share(1) == 0
    assert creator_share(99) == 79
    assert creator_share(100, share_pct=0) == 0


def test_skill_points_for_duration() -> None:
    assert skill_points_for(30) == 2
    assert skill_points_for(10) == 1
    assert skill_points_for(0) == 2  # no duration recorded: 30 minutes assumed
    assert skill_points_for(None) == 2
    assert skill_points_for(90) == 6


# ---- worked examples ----


def test_enroll_settles_price_between_student_and_creator() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, price=50)

        enrollment = await EnrollmentEngine(store).enroll(student.id, course.id, "credits")

        assert enrollment.progress == 0
        assert enrollment.completed_at is None
        assert await _balance(store, student.id) == 50
        assert await _balance(store, creator.id) == 40

        spent = (await store.ledger.list_by_user(student.id))[0]
        assert spent.type == "spent"
        assert spent.amount == -50
        assert spent.related_id == str(course.id)
        assert spent.description == "Enrolled in course: Intro to Python"
        earned = (await store.ledger.list_by_user(creator.id))[0]
        assert earned.type == "earned"
        assert earned.amount == 40
        assert earned.description == "Course enrollment: Intro to Python"

    asyncio.run(scenario())


def test_completing_single_lesson_completes_course() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, lessons = await _setup(store, price=50)
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        updated = await engine.report_lesson_progress(enrollment.id, lessons[0].id, 30)

        assert updated.progress == 100
        assert updated.completed_at is not None
        certificate = await store.certificates.get_by_enrollment(enrollment.id)
        assert certificate is not None
        assert certificate.course_name == course.title
        assert certificate.completed_at == updated.completed_at
        user = await store.users.get(student.id)
        assert user.skill_points == 2
        assert f"course-completed-{course.id}" in user.badges
        assert completion_badge(course.id) in user.badges

    asyncio.run(scenario())


def test_second_enroll_fails_and_leaves_balances() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, price=50)
        engine = EnrollmentEngine(store)
        await engine.enroll(student.id, course.id)

        with pytest.raises(AlreadyEnrolled):
            await engine.enroll(student.id, course.id)

        assert await _balance(store, student.id) == 50
        assert await _balance(store, creator.id) == 40
        assert len(await store.enrollments.list_by_user(student.id)) == 1

    asyncio.run(scenario())


def test_insufficient_funds_creates_nothing() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, balance=10, price=50)

        with pytest.raises(InsufficientFunds):
            await EnrollmentEngine(store).enroll(student.id, course.id)

        assert await _balance(store, student.id) == 10
        assert await _balance(store, creator.id) == 0
        assert await store.enrollments.get_by_user_and_course(student.id, course.id) is None
        assert len(await store.ledger.list_by_user(student.id)) == 1
        assert await store.ledger.list_by_user(creator.id) == []

    asyncio.run(scenario())


def test_creator_cannot_enroll_in_own_course() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, _, course, _ = await _setup(store)
        with pytest.raises(SelfEnrollmentNotAllowed):
            await EnrollmentEngine(store).enroll(creator.id, course.id)

    asyncio.run(scenario())


# ---- preconditions ----


def test_enroll_in_missing_course() -> None:
    async def scenario():
        store = InMemoryStore()
        student = await make_user(store, balance=100)
        with pytest.raises(CourseNotFound):
            await EnrollmentEngine(store).enroll(student.id, uuid.uuid4())

    asyncio.run(scenario())


def test_enroll_in_draft_course_not_available() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, publish=False)
        with pytest.raises(NotAvailable):
            await EnrollmentEngine(store).enroll(student.id, course.id)

    asyncio.run(scenario())


def test_draft_check_precedes_self_enrollment_check() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, _, course, _ = await _setup(store, publish=False)
        with pytest.raises(NotAvailable):
            await EnrollmentEngine(store).enroll(creator.id, course.id)

    asyncio.run(scenario())


def test_money_payment_not_implemented() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store)
        with pytest.raises(NotImplementedPayment):
            await EnrollmentEngine(store).enroll(student.id, course.id, "money")
        assert await _balance(store, student.id) == 100

    asyncio.run(scenario())


def test_unknown_payment_method_rejected() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store)
        with pytest.raises(ValidationError):
            await EnrollmentEngine(store).enroll(student.id, course.id, "barter")

    asyncio.run(scenario())


def test_free_course_makes_no_ledger_calls() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, balance=0, price=0)
        ledger = _CountingLedger(store)

        enrollment = await EnrollmentEngine(store, ledger=ledger).enroll(
            student.id, course.id
        )

        assert enrollment.course_id == course.id
        assert ledger.calls == []

    asyncio.run(scenario())


def test_zero_creator_share_skips_creator_credit() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, price=1)
        ledger = _CountingLedger(store)

        await EnrollmentEngine(store, ledger=ledger).enroll(student.id, course.id)

        assert ledger.calls == [("debit", 1)]
        assert await _balance(store, creator.id) == 0

    asyncio.run(scenario())


# ---- atomicity ----


def test_failed_creator_credit_rolls_back_student_debit() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, price=50)
        engine = EnrollmentEngine(store, ledger=_FailingCreditLedger(store))

        with pytest.raises(RuntimeError):
            await engine.enroll(student.id, course.id)

        assert await _balance(store, student.id) == 100
        assert len(await store.ledger.list_by_user(student.id)) == 1
        assert await store.enrollments.get_by_user_and_course(student.id, course.id) is None
        assert await Ledger(store).is_consistent(student.id)

    asyncio.run(scenario())


def test_concurrent_enrolls_settle_once() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, price=50)
        engine = EnrollmentEngine(store)

        results = await asyncio.gather(
            *(engine.enroll(student.id, course.id) for _ in range(3)),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, AlreadyEnrolled)) == 2
        assert await _balance(store, student.id) == 50
        assert await _balance(store, creator.id) == 40

    asyncio.run(scenario())


# ---- idempotency keys ----


def test_idempotent_retry_returns_same_enrollment_without_charging() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, price=50)
        ledger = _CountingLedger(store)
        engine = EnrollmentEngine(
            store, ledger=ledger, idempotency=InMemoryIdempotencyStore()
        )

        first = await engine.enroll(student.id, course.id, idempotency_key="req-1")
        second = await engine.enroll(student.id, course.id, idempotency_key="req-1")

        assert second.id == first.id
        assert ledger.calls == [("debit", 50), ("credit", 40)]
        assert await _balance(store, student.id) == 50

    asyncio.run(scenario())


def test_idempotency_key_reused_for_other_course_conflicts() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store, price=10)
        other, _ = await make_course(store, creator.id, title="Other", price=10)
        engine = EnrollmentEngine(store, idempotency=InMemoryIdempotencyStore())

        await engine.enroll(student.id, course.id, idempotency_key="req-1")
        with pytest.raises(IdempotencyConflict):
            await engine.enroll(student.id, other.id, idempotency_key="req-1")

        assert await _balance(store, student.id) == 90

    asyncio.run(scenario())


def test_idempotency_keys_are_scoped_per_user() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, price=10)
        classmate = await make_user(store, balance=10)
        engine = EnrollmentEngine(store, idempotency=InMemoryIdempotencyStore())

        mine = await engine.enroll(student.id, course.id, idempotency_key="req-1")
        theirs = await engine.enroll(classmate.id, course.id, idempotency_key="req-1")

        assert mine.id != theirs.id
        assert await _balance(store, classmate.id) == 0

    asyncio.run(scenario())


def test_key_bound_to_vanished_enrollment_is_released() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, price=10)
        keys = InMemoryIdempotencyStore()
        await keys.bind(
            f"{student.id}:req-1", f"{student.id}:{course.id}:{uuid.uuid4()}", 60
        )
        engine = EnrollmentEngine(store, idempotency=keys)

        enrollment = await engine.enroll(student.id, course.id, idempotency_key="req-1")

        assert await keys.get(f"{student.id}:req-1") == (
            f"{student.id}:{course.id}:{enrollment.id}"
        )

    asyncio.run(scenario())


def test_failed_enroll_does_not_bind_key() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, balance=10, price=50)
        keys = InMemoryIdempotencyStore()
        engine = EnrollmentEngine(store, idempotency=keys)

        with pytest.raises(InsufficientFunds):
            await engine.enroll(student.id, course.id, idempotency_key="req-1")

        assert await keys.get(f"{student.id}:req-1") is None

    asyncio.run(scenario())


def test_unreachable_idempotency_store_surfaces_unavailable() -> None:
    class _DownStore(InMemoryIdempotencyStore):
        async def get(self, key):
            raise TransientStorageError("redis down")

    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, price=10)
        engine = EnrollmentEngine(store, idempotency=_DownStore())

        with pytest.raises(Unavailable):
            await engine.enroll(student.id, course.id, idempotency_key="req-1")
        assert await _balance(store, student.id) == 100

    asyncio.run(scenario())


def test_settlement_retries_as_one_unit() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, _ = await _setup(store, price=50)
        calls = []

        async def _down(user_id):
            calls.append(user_id)
            raise TransientStorageError("db down")

        store.users.get_for_update = _down

        with pytest.raises(Unavailable):
            await EnrollmentEngine(store).enroll(student.id, course.id)

        # One user-row read per settlement attempt; the debit has no retry of its own.
        assert len(calls) == SETTINGS.storage_retry_attempts
        assert await _balance(store, student.id) == 100
        assert await store.enrollments.get_by_user_and_course(student.id, course.id) is None

    asyncio.run(scenario())


# ---- progress ----


def test_progress_recomputed_and_monotonic() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, lessons = await _setup(store, durations=(30, 30, 30))
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        seen = []
        for lesson in [lessons[0], lessons[0], lessons[2], lessons[1]]:
            seen.append((await engine.report_lesson_progress(enrollment.id, lesson.id)).progress)

        assert seen == [33, 33, 66, 100]
        assert seen == sorted(seen)

    asyncio.run(scenario())


def test_repeat_report_accumulates_time_only() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, lessons = await _setup(store, durations=(45, 30))
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        await engine.report_lesson_progress(enrollment.id, lessons[0].id, 20)
        again = await engine.report_lesson_progress(enrollment.id, lessons[0].id, 15)

        assert again.progress == 50
        row = await store.enrollments.get_progress(enrollment.id, lessons[0].id)
        assert row.completed is True
        assert row.time_spent == 35
        # Skill points are awarded on the first completion only.
        assert (await store.users.get(student.id)).skill_points == 3

    asyncio.run(scenario())


def test_reports_without_time_count_as_zero_minutes() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, lessons = await _setup(store, durations=(None, 30))
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        await engine.report_lesson_progress(enrollment.id, lessons[0].id)

        row = await store.enrollments.get_progress(enrollment.id, lessons[0].id)
        assert row.time_spent == 0
        assert (await store.users.get(student.id)).skill_points == 2

    asyncio.run(scenario())


def test_completion_trigger_fires_once() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, lessons = await _setup(store, durations=(15,))
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        done = await engine.report_lesson_progress(enrollment.id, lessons[0].id)
        certificate = await store.certificates.get_by_enrollment(enrollment.id)
        again = await engine.report_lesson_progress(enrollment.id, lessons[0].id, 5)

        assert again.completed_at == done.completed_at
        assert (await store.certificates.get_by_enrollment(enrollment.id)).id == certificate.id
        assert len(await store.certificates.list_by_user(student.id)) == 1
        user = await store.users.get(student.id)
        assert user.badges == frozenset({completion_badge(course.id)})

    asyncio.run(scenario())


def test_report_after_completion_keeps_progress_at_100() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, lessons = await _setup(store, durations=(30,))
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)
        await engine.report_lesson_progress(enrollment.id, lessons[0].id)

        # A lesson appearing later would lower the recomputed figure.
        await store.courses.add_lesson(
            CourseLesson.new(
                course_id=course.id, title="Bonus", content_type="text", order_index=1
            )
        )
        again = await engine.report_lesson_progress(enrollment.id, lessons[0].id)

        assert again.progress == 100

    asyncio.run(scenario())


def test_progress_errors() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, lessons = await _setup(store)
        _, other_lessons = await make_course(store, creator.id, title="Other")
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        with pytest.raises(EnrollmentNotFound):
            await engine.report_lesson_progress(uuid.uuid4(), lessons[0].id)
        with pytest.raises(LessonNotFound):
            await engine.report_lesson_progress(enrollment.id, uuid.uuid4())
        with pytest.raises(LessonNotInCourse):
            await engine.report_lesson_progress(enrollment.id, other_lessons[0].id)
        with pytest.raises(ValidationError):
            await engine.report_lesson_progress(enrollment.id, lessons[0].id, -1)
        with pytest.raises(Forbidden):
            await engine.report_lesson_progress(
                enrollment.id, lessons[0].id, requester_id=creator.id
            )

        assert (await store.enrollments.get(enrollment.id)).progress == 0

    asyncio.run(scenario())


def test_concurrent_reports_award_points_once() -> None:
    async def scenario():
        store = InMemoryStore()
        _, student, course, lessons = await _setup(store, durations=(30, 30))
        engine = EnrollmentEngine(store)
        enrollment = await engine.enroll(student.id, course.id)

        await asyncio.gather(
            *(engine.report_lesson_progress(enrollment.id, lessons[0].id, 10) for _ in range(4))
        )

        row = await store.enrollments.get_progress(enrollment.id, lessons[0].id)
        assert row.time_spent == 40
        assert (await store.users.get(student.id)).skill_points == 2
        assert (await store.enrollments.get(enrollment.id)).progress == 50

    asyncio.run(scenario())


# ---- reads ----


def test_can_access() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, _ = await _setup(store)
        stranger = await make_user(store)
        engine = EnrollmentEngine(store)
        await engine.enroll(student.id, course.id)

        assert await engine.can_access(creator.id, course.id)
        assert await engine.can_access(student.id, course.id)
        assert not await engine.can_access(stranger.id, course.id)
        assert not await engine.can_access(student.id, uuid.uuid4())

    asyncio.run(scenario())


def test_enrolled_courses_and_lesson_progress() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, student, course, lessons = await _setup(store, price=10, durations=(30, 30))
        second, _ = await make_course(store, creator.id, title="Second", price=10)
        engine = EnrollmentEngine(store)
        e1 = await engine.enroll(student.id, course.id)
        e2 = await engine.enroll(student.id, second.id)
        await engine.report_lesson_progress(e1.id, lessons[1].id, 12)

        pairs = await engine.enrolled_courses(student.id)
        assert [(e.id, c.id) for e, c in pairs] == [(e1.id, course.id), (e2.id, second.id)]

        enrollment, rows = await engine.lesson_progress(e1.id, requester_id=student.id)
        assert enrollment.progress == 50
        assert [(r.lesson_id, r.time_spent) for r in rows] == [(lessons[1].id, 12)]

        with pytest.raises(Forbidden):
            await engine.lesson_progress(e1.id, requester_id=creator.id)

        assert (await engine.get_enrollment(student.id, second.id)).id == e2.id
        assert await engine.get_enrollment(creator.id, second.id) is None

    asyncio.run(scenario())
