"""In-memory transaction tests: a failing block leaves no trace."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace

import pytest

from skillswap.models.course import Course
from skillswap.models.enrollment import CourseEnrollment
from skillswap.models.ledger import CreditTransaction
from skillswap.models.user import User
from skillswap.repos.store import InMemoryStore


class _Boom(Exception):
    pass


async def _user(store: InMemoryStore) -> User:
    user = User.new(name="tee")
    await store.users.add(user)
    return user


def test_failed_transaction_undoes_every_write() -> None:
    async def scenario():
        store = InMemoryStore()
        user = await _user(store)
        course = Course.new(
            creator_id=user.id,
            skill_id=user.id,
            title="Chess",
            description="",
            price_credits=10,
        )

        with pytest.raises(_Boom):
            async with store.transaction():
                await store.courses.add(course)
                await store.ledger.apply(
                    CreditTransaction.new(user_id=user.id, amount=25, type="earned"), 25
                )
                await store.enrollments.add(
                    CourseEnrollment.new(course_id=course.id, user_id=user.id)
                )
                await store.users.add_skill_points(user.id, 3)
                await store.users.add_badge(user.id, "first-steps")
                raise _Boom()

        assert await store.courses.get(course.id) is None
        assert await store.ledger.list_by_user(user.id) == []
        assert await store.enrollments.get_by_user_and_course(user.id, course.id) is None
        assert await store.users.get(user.id) == user

    asyncio.run(scenario())


def test_committed_transaction_keeps_writes() -> None:
    async def scenario():
        store = InMemoryStore()
        user = await _user(store)

        async with store.transaction():
            await store.ledger.apply(
                CreditTransaction.new(user_id=user.id, amount=5, type="purchased"), 5
            )

        assert (await store.users.get(user.id)).credit_balance == 5
        assert await store.ledger.sum_for_user(user.id) == 5

    asyncio.run(scenario())


def test_outer_failure_undoes_committed_inner_transaction() -> None:
    async def scenario():
        store = InMemoryStore()
        user = await _user(store)

        with pytest.raises(_Boom):
            async with store.transaction():
                async with store.transaction():
                    await store.ledger.apply(
                        CreditTransaction.new(user_id=user.id, amount=7, type="earned"), 7
                    )
                    await store.users.add_skill_points(user.id, 4)
                raise _Boom()

        assert (await store.users.get(user.id)).skill_points == 0
        assert await store.ledger.list_by_user(user.id) == []

    asyncio.run(scenario())


def test_rollback_keeps_concurrent_writes_to_same_user() -> None:
    """Undo applies inverse deltas, so another task's committed change to
    the same user survives this task's rollback."""

    async def scenario():
        store = InMemoryStore()
        user = await _user(store)
        inside = asyncio.Event()
        other_done = asyncio.Event()

        async def failing() -> None:
            async with store.transaction():
                await store.users.add_skill_points(user.id, 10)
                inside.set()
                await other_done.wait()
                raise _Boom()

        async def other() -> None:
            await inside.wait()
            async with store.transaction():
                await store.users.add_skill_points(user.id, 2)
            other_done.set()

        results = await asyncio.gather(failing(), other(), return_exceptions=True)
        assert isinstance(results[0], _Boom)
        assert (await store.users.get(user.id)).skill_points == 2

    asyncio.run(scenario())


def test_badges_are_a_set() -> None:
    async def scenario():
        store = InMemoryStore()
        user = await _user(store)
        assert await store.users.add_badge(user.id, "b") is True
        assert await store.users.add_badge(user.id, "b") is False
        assert (await store.users.get(user.id)).badges == frozenset({"b"})

    asyncio.run(scenario())


def test_duplicate_enrollment_rejected_by_repo() -> None:
    async def scenario():
        store = InMemoryStore()
        user = await _user(store)
        first = CourseEnrollment.new(course_id=user.id, user_id=user.id)
        await store.enrollments.add(first)
        with pytest.raises(ValueError):
            await store.enrollments.add(replace(first, id=uuid.uuid4()))

    asyncio.run(scenario())
