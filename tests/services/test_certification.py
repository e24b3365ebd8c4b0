from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace

import pytest

from skillswap.core.errors import CourseNotCompleted, EnrollmentNotFound, Forbidden
from skillswap.repos.store import InMemoryStore
from skillswap.services.audit import AUDIT_QUEUE
from skillswap.services.certification import CertificationService, certificate_url
from skillswap.services.enrollment import EnrollmentEngine
from skillswap.services.task_queue import task_queue
from tests.conftest import make_course, make_user


async def _enrolled(store: InMemoryStore, *, complete: bool):
    creator = await make_user(store)
    student = await make_user(store, balance=100)
    course, lessons = await make_course(store, creator.id, durations=(30, 30))
    engine = EnrollmentEngine(store)
    enrollment = await engine.enroll(student.id, course.id)
    if complete:
        for lesson in lessons:
            await engine.report_lesson_progress(enrollment.id, lesson.id)
    return student, course, await store.enrollments.get(enrollment.id)


def test_certificate_url_format() -> None:
    eid = uuid.UUID("00000000-0000-0000-0000-000000000001")
    assert certificate_url(eid, "https://certs.example.com/") == (
        "https://certs.example.com/00000000-0000-0000-0000-000000000001.pdf"
    )
    assert certificate_url(eid).startswith("https://certificates.skillswap.com/")


def test_generate_is_idempotent() -> None:
    async def scenario():
        store = InMemoryStore()
        student, course, enrollment = await _enrolled(store, complete=True)
        service = CertificationService(store)

        ids = {(await service.generate(enrollment.id)).id for _ in range(3)}

        assert len(ids) == 1
        certificate = await store.certificates.get_by_enrollment(enrollment.id)
        assert certificate.user_id == student.id
        assert certificate.course_id == course.id
        assert certificate.completed_at == enrollment.completed_at
        assert certificate.certificate_url.endswith(f"/{enrollment.id}.pdf")

    asyncio.run(scenario())


def test_concurrent_generate_creates_one_certificate() -> None:
    async def scenario():
        store = InMemoryStore()
        _, _, enrollment = await _enrolled(store, complete=False)
        # Mark complete without running the trigger so generate() creates it.
        await store.enrollments.update(replace(enrollment, progress=100))
        service = CertificationService(store)

        results = await asyncio.gather(*(service.generate(enrollment.id) for _ in range(5)))

        assert len({c.id for c in results}) == 1

    asyncio.run(scenario())


def test_generate_before_completion_fails() -> None:
    async def scenario():
        store = InMemoryStore()
        _, _, enrollment = await _enrolled(store, complete=False)
        with pytest.raises(CourseNotCompleted):
            await CertificationService(store).generate(enrollment.id)
        assert await store.certificates.get_by_enrollment(enrollment.id) is None

    asyncio.run(scenario())


def test_generate_for_missing_enrollment() -> None:
    async def scenario():
        with pytest.raises(EnrollmentNotFound):
            await CertificationService(InMemoryStore()).generate(uuid.uuid4())

    asyncio.run(scenario())


def test_generate_only_for_enrolled_student() -> None:
    async def scenario():
        store = InMemoryStore()
        student, course, enrollment = await _enrolled(store, complete=True)
        service = CertificationService(store)

        with pytest.raises(Forbidden):
            await service.generate(enrollment.id, requester_id=course.creator_id)
        mine = await service.generate(enrollment.id, requester_id=student.id)
        assert mine.user_id == student.id

    asyncio.run(scenario())


def test_completed_at_defaults_to_now_when_enrollment_lacks_it() -> None:
    async def scenario():
        store = InMemoryStore()
        _, _, enrollment = await _enrolled(store, complete=False)
        await store.enrollments.update(replace(enrollment, progress=100))

        certificate = await CertificationService(store).generate(enrollment.id)

        assert certificate.completed_at is not None

    asyncio.run(scenario())


def test_certificates_for_user_and_audit() -> None:
    async def scenario():
        store = InMemoryStore()
        student, _, enrollment = await _enrolled(store, complete=True)
        certificates = await CertificationService(store).certificates_for_user(student.id)
        assert [c.enrollment_id for c in certificates] == [enrollment.id]

    asyncio.run(scenario())
    actions = [t.payload["action"] for t in task_queue._queues[AUDIT_QUEUE]]  # type: ignore[union-attr]
    assert actions.count("certificate.issued") == 1
