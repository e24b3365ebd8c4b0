from __future__ import annotations

import sys
from pathlib import Path
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from skillswap.api.dependencies import memory_store
from skillswap.main import app
from skillswap.models.course import Course, CourseLesson
from skillswap.models.session import SkillSession
from skillswap.models.skill import Skill
from skillswap.models.user import User
from skillswap.repos.store import InMemoryStore
from skillswap.services import token_service
from skillswap.services.course_catalog import CourseCatalog
from skillswap.services.idempotency import idempotency_store
from skillswap.services.ledger import Ledger
from skillswap.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import skillswap` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_store() -> None:
    """Every test starts with an empty in-memory store."""
    memory_store.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues (audit events) between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_idempotency_keys() -> None:
    if hasattr(idempotency_store, "_entries"):
        idempotency_store._entries.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def store() -> InMemoryStore:
    """The store the API uses when DATABASE_URL is unset."""
    return memory_store


def mint_token(user_id: UUID | str, roles: list[str] | None = None) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(user_id), roles=roles)


def auth(user_id: UUID | str) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(user_id)}"}


# ---------------------------------------------------------------------------
# Seed helpers (async; drive them with asyncio.run)
# ---------------------------------------------------------------------------


async def make_user(store: InMemoryStore, *, name: str = "", balance: int = 0) -> User:
    """Add a user.  A starting balance is posted through the ledger so the
    balance always equals the sum of the user's transactions."""
    user = User.new(name=name)
    await store.users.add(user)
    if balance:
        await Ledger(store).credit(
            user.id, balance, "purchased", description="Starting balance"
        )
    created = await store.users.get(user.id)
    assert created is not None
    return created


async def make_skill(
    store: InMemoryStore,
    owner_id: UUID,
    *,
    title: str = "Python",
    category: str = "Programming",
) -> Skill:
    skill = Skill.new(user_id=owner_id, title=title, category=category)
    await store.skills.add(skill)
    return skill


async def make_session(
    store: InMemoryStore,
    teacher_id: UUID,
    student_id: UUID,
    *,
    credits: int = 10,
    status: str = "completed",
) -> SkillSession:
    skill = await make_skill(store, teacher_id)
    session = SkillSession.new(
        teacher_id=teacher_id,
        student_id=student_id,
        skill_id=skill.id,
        credits_amount=credits,
        status=status,
    )
    await store.sessions.add(session)
    return session


async def make_course(
    store: InMemoryStore,
    creator_id: UUID,
    *,
    price: int = 50,
    durations: tuple[int | None, ...] = (30,),
    publish: bool = True,
    title: str = "Intro to Python",
    description: str = "Learn the basics",
    category: str = "Programming",
) -> tuple[Course, list[CourseLesson]]:
    """Create a course with one lesson per entry in ``durations``."""
    skill = await make_skill(store, creator_id, category=category)
    catalog = CourseCatalog(store)
    course = await catalog.create_course(
        creator_id,
        skill_id=skill.id,
        title=title,
        description=description,
        price_credits=price,
    )
    lessons = []
    for i, duration in enumerate(durations):
        lessons.append(
            await catalog.add_lesson(
                course.id,
                creator_id,
                title=f"Lesson {i + 1}",
                content_type="video",
                content_url=f"https://cdn.example.com/{course.id}/{i}.mp4",
                duration=duration,
            )
        )
    if publish:
        course = await catalog.publish(course.id, creator_id)
    else:
        course = await store.courses.get(course.id)
    return course, lessons
