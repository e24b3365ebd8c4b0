"""Course lifecycle tests: draft -> lessons -> published (one way)."""

from __future__ import annotations

import asyncio
import uuid

import pytest

from skillswap.core.errors import (
    CourseNotFound,
    Forbidden,
    InsufficientContent,
    InvalidPrice,
    InvalidState,
    LessonNotFound,
    SkillNotFound,
    ValidationError,
)
from skillswap.repos.store import InMemoryStore
from skillswap.services.course_catalog import CourseCatalog
from tests.conftest import make_course, make_skill, make_user


async def _draft(store: InMemoryStore, **kwargs):
    creator = await make_user(store)
    course, lessons = await make_course(store, creator.id, publish=False, **kwargs)
    return creator, course, lessons


# ---- create ----


def test_create_course_starts_as_empty_draft() -> None:
    async def scenario():
        store = InMemoryStore()
        creator = await make_user(store)
        skill = await make_skill(store, creator.id)

        course = await CourseCatalog(store).create_course(
            creator.id, skill_id=skill.id, title="  Rust for Pythonistas ", price_credits=40
        )

        assert course.status == "draft"
        assert course.title == "Rust for Pythonistas"
        assert course.total_lessons == 0
        assert course.total_duration == 0
        assert course.creator_id == creator.id

    asyncio.run(scenario())


def test_create_course_requires_existing_skill() -> None:
    async def scenario():
        store = InMemoryStore()
        creator = await make_user(store)
        with pytest.raises(SkillNotFound):
            await CourseCatalog(store).create_course(
                creator.id, skill_id=uuid.uuid4(), title="Nope"
            )

    asyncio.run(scenario())


def test_create_course_for_someone_elses_skill_is_forbidden() -> None:
    async def scenario():
        store = InMemoryStore()
        owner = await make_user(store)
        other = await make_user(store)
        skill = await make_skill(store, owner.id)
        with pytest.raises(Forbidden):
            await CourseCatalog(store).create_course(
                other.id, skill_id=skill.id, title="Borrowed"
            )

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "prices", [{"price_credits": -1}, {"price_credits": 10, "price_money": -100}]
)
def test_negative_price_rejected(prices) -> None:
    async def scenario():
        store = InMemoryStore()
        creator = await make_user(store)
        skill = await make_skill(store, creator.id)
        with pytest.raises(InvalidPrice):
            await CourseCatalog(store).create_course(
                creator.id, skill_id=skill.id, title="Cheap", **prices
            )

    asyncio.run(scenario())


def test_blank_title_rejected() -> None:
    async def scenario():
        store = InMemoryStore()
        creator = await make_user(store)
        skill = await make_skill(store, creator.id)
        with pytest.raises(ValidationError):
            await CourseCatalog(store).create_course(
                creator.id, skill_id=skill.id, title="   "
            )

    asyncio.run(scenario())


# ---- lessons ----


def test_add_lesson_updates_counters_and_assigns_next_index() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, course, lessons = await _draft(store, durations=(20, None, 45))
        course = await store.courses.get(course.id)

        assert [x.order_index for x in lessons] == [0, 1, 2]
        assert course.total_lessons == 3
        # A lesson without a duration counts as zero minutes.
        assert course.total_duration == 65

    asyncio.run(scenario())


def test_only_creator_can_add_lessons() -> None:
    async def scenario():
        store = InMemoryStore()
        _, course, _ = await _draft(store)
        stranger = await make_user(store)
        with pytest.raises(Forbidden):
            await CourseCatalog(store).add_lesson(
                course.id, stranger.id, title="Sneaky", content_type="text"
            )

    asyncio.run(scenario())


def test_add_lesson_to_missing_course() -> None:
    async def scenario():
        store = InMemoryStore()
        creator = await make_user(store)
        with pytest.raises(CourseNotFound):
            await CourseCatalog(store).add_lesson(
                uuid.uuid4(), creator.id, title="Orphan", content_type="text"
            )

    asyncio.run(scenario())


def test_update_lesson_applies_duration_delta() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        creator, course, lessons = await _draft(store, durations=(30, 10))

        updated = await catalog.update_lesson(
            lessons[0].id, creator.id, title="Setup", duration=50
        )

        assert updated.title == "Setup"
        assert updated.duration == 50
        course = await store.courses.get(course.id)
        assert course.total_duration == 60
        assert course.total_lessons == 2

    asyncio.run(scenario())


def test_update_lesson_rejects_unknown_and_null_required_fields() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        creator, _, lessons = await _draft(store)

        with pytest.raises(ValidationError):
            await catalog.update_lesson(lessons[0].id, creator.id, course_id=uuid.uuid4())
        with pytest.raises(ValidationError):
            await catalog.update_lesson(lessons[0].id, creator.id, title=None)

    asyncio.run(scenario())


def test_delete_lesson_decrements_counters() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        creator, course, lessons = await _draft(store, durations=(30, 15))

        await catalog.delete_lesson(lessons[1].id, creator.id)

        course, remaining = await catalog.get_course_with_lessons(course.id)
        assert [x.id for x in remaining] == [lessons[0].id]
        assert course.total_lessons == 1
        assert course.total_duration == 30

        with pytest.raises(LessonNotFound):
            await catalog.delete_lesson(lessons[1].id, creator.id)

    asyncio.run(scenario())


def test_lessons_frozen_after_publish() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        creator = await make_user(store)
        course, lessons = await make_course(store, creator.id)

        with pytest.raises(InvalidState):
            await catalog.add_lesson(
                course.id, creator.id, title="Late", content_type="text"
            )
        with pytest.raises(InvalidState):
            await catalog.update_lesson(lessons[0].id, creator.id, title="Edited")
        with pytest.raises(InvalidState):
            await catalog.delete_lesson(lessons[0].id, creator.id)

    asyncio.run(scenario())


def test_lessons_listed_by_order_index() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        creator, course, _ = await _draft(store, durations=())
        late = await catalog.add_lesson(
            course.id, creator.id, title="Wrap-up", content_type="text", order_index=5
        )
        early = await catalog.add_lesson(
            course.id, creator.id, title="Welcome", content_type="text", order_index=0
        )

        _, lessons = await catalog.get_course_with_lessons(course.id)
        assert [x.id for x in lessons] == [early.id, late.id]

    asyncio.run(scenario())


# ---- publish ----


def test_publish_is_one_way() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        creator, course, _ = await _draft(store)

        published = await catalog.publish(course.id, creator.id)
        assert published.status == "published"

        with pytest.raises(InvalidState):
            await catalog.publish(course.id, creator.id)

    asyncio.run(scenario())


def test_publish_without_lessons_fails() -> None:
    async def scenario():
        store = InMemoryStore()
        creator, course, _ = await _draft(store, durations=())
        with pytest.raises(InsufficientContent):
            await CourseCatalog(store).publish(course.id, creator.id)

        course = await store.courses.get(course.id)
        assert course.status == "draft"

    asyncio.run(scenario())


def test_only_creator_can_publish() -> None:
    async def scenario():
        store = InMemoryStore()
        _, course, _ = await _draft(store)
        stranger = await make_user(store)
        with pytest.raises(Forbidden):
            await CourseCatalog(store).publish(course.id, stranger.id)

    asyncio.run(scenario())


# ---- search ----


def test_search_filters_combine() -> None:
    async def scenario():
        store = InMemoryStore()
        catalog = CourseCatalog(store)
        alice = await make_user(store)
        bob = await make_user(store)
        py, _ = await make_course(store, alice.id, title="Python Basics", price=30)
        await make_course(
            store, alice.id, title="Watercolour", price=80, category="Art"
        )
        await make_course(store, bob.id, title="Advanced python", price=120)
        await make_course(store, bob.id, title="Python drafts", publish=False)

        by_query = await catalog.search("PYTHON")
        assert {c.title for c in by_query} == {"Python Basics", "Advanced python"}

        cheap = await catalog.search("python", max_price=100)
        assert [c.id for c in cheap] == [py.id]

        art = await catalog.search(category="art")
        assert [c.title for c in art] == ["Watercolour"]

        mine = await catalog.search(creator_id=alice.id, min_price=50)
        assert [c.title for c in mine] == ["Watercolour"]

        drafts = await catalog.search(status="draft")
        assert [c.title for c in drafts] == ["Python drafts"]

        assert len(await catalog.courses_by_creator(bob.id)) == 2

    asyncio.run(scenario())


def test_search_matches_description() -> None:
    async def scenario():
        store = InMemoryStore()
        creator = await make_user(store)
        await make_course(
            store, creator.id, title="Knots", description="Sailing essentials"
        )
        found = await CourseCatalog(store).search("sailing")
        assert [c.title for c in found] == ["Knots"]

    asyncio.run(scenario())
