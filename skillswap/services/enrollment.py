"""Enrollment, settlement and lesson progress.

Per-enrollment state machine::

    not-enrolled --enroll--> enrolled (progress 0..99) --> completed (100)

There are no reverse transitions.  Reports after completion are
accepted and add time, but progress never goes down.

Settlement
----------
Enrolling in a priced course with credits debits the student, credits
the creator ``creator_share(price)``, and inserts the enrollment.  The
three writes share one Store transaction, so a failure at any step
(including the creator credit after the debit went through) leaves no
trace.  Attempts for the same (user, course) are serialised, and an
optional idempotency key lets a client retry a timed-out request
without being charged twice.

Progress
--------
Progress is recomputed from all LessonProgress rows of the enrollment
on every report rather than incremented, and the first time it reaches
100 the completion trigger sets ``completed_at``, issues the
certificate and awards the course badge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID

from skillswap.core.config import SETTINGS
from skillswap.core.errors import (
    AlreadyEnrolled,
    CourseNotFound,
    EnrollmentNotFound,
    Forbidden,
    IdempotencyConflict,
    LessonNotFound,
    LessonNotInCourse,
    NotAvailable,
    NotImplementedPayment,
    SelfEnrollmentNotAllowed,
    UserNotFound,
    ValidationError,
)
from skillswap.core.locks import KeyedLock
from skillswap.core.metrics import ENROLLMENTS, LESSONS_COMPLETED
from skillswap.core.retry import with_storage_retry
from skillswap.models.course import Course
from skillswap.models.enrollment import CourseEnrollment, LessonProgress
from skillswap.repos.store import Store
from skillswap.services.audit import AuditEvent, AuditSink, audit_sink
from skillswap.services.certification import CertificationService
from skillswap.services.idempotency import IdempotencyStore, idempotency_store
from skillswap.services.ledger import Ledger

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("credits", "money")
DEFAULT_LESSON_MINUTES = 30
MINUTES_PER_SKILL_POINT = 15

_enroll_locks = KeyedLock()
_progress_locks = KeyedLock()


def creator_share(price_credits: int, share_pct: int | None = None) -> int:
    """Credits the creator earns per enrollment: floor(price * pct / 100)."""
    pct = SETTINGS.creator_revenue_share_pct if share_pct is None else share_pct
    return price_credits * pct // 100


def skill_points_for(duration: int | None) -> int:
    return max(1, (duration or DEFAULT_LESSON_MINUTES) // MINUTES_PER_SKILL_POINT)


def completion_badge(course_id: UUID) -> str:
    return f"course-completed-{course_id}"


@dataclass(frozen=True, slots=True)
class _ProgressOutcome:
    enrollment: CourseEnrollment
    lesson_first_completed: bool
    course_completed: bool


class EnrollmentEngine:
    def __init__(
        self,
        store: Store,
        *,
        ledger: Ledger | None = None,
        certification: CertificationService | None = None,
        idempotency: IdempotencyStore | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._store = store
        self._audit = audit or audit_sink
        self._ledger = ledger or Ledger(store, audit=self._audit)
        self._certification = certification or CertificationService(
            store, audit=self._audit
        )
        self._idempotency = idempotency or idempotency_store

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def enroll(
        self,
        user_id: UUID,
        course_id: UUID,
        payment_method: str = "credits",
        idempotency_key: str | None = None,
    ) -> CourseEnrollment:
        """Enroll ``user_id`` in ``course_id`` and settle the price.

        Preconditions are checked in order, first failure wins:
        CourseNotFound, NotAvailable, SelfEnrollmentNotAllowed,
        AlreadyEnrolled.  ``money`` payments raise NotImplementedPayment.
        """
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payment_method must be one of {', '.join(PAYMENT_METHODS)}"
            )
        scoped_key = f"{user_id}:{idempotency_key}" if idempotency_key else None

        async with _enroll_locks.hold((user_id, course_id)):
            if scoped_key is not None:
                replay = await with_storage_retry(
                    lambda: self._replay(scoped_key, user_id, course_id),
                    name="idempotency lookup",
                )
                if replay is not None:
                    logger.info(
                        "Idempotent enroll replay user=%s course=%s enrollment=%s",
                        user_id,
                        course_id,
                        replay.id,
                    )
                    return replay

            enrollment, course = await with_storage_retry(
                lambda: self._settle_and_enroll(user_id, course_id, payment_method),
                name="enroll",
            )

            if scoped_key is not None:
                bound = await with_storage_retry(
                    lambda: self._idempotency.bind(
                        scoped_key,
                        f"{user_id}:{course_id}:{enrollment.id}",
                        SETTINGS.idempotency_ttl_seconds,
                    ),
                    name="idempotency bind",
                )
                if not bound:
                    # Same key raced on a different course; that one keeps it.
                    logger.warning(
                        "Idempotency key already bound user=%s course=%s",
                        user_id,
                        course_id,
                    )

        ENROLLMENTS.labels(payment_method=payment_method).inc()
        logger.info(
            "Enrollment settled id=%s user=%s course=%s price=%d",
            enrollment.id,
            user_id,
            course_id,
            course.price_credits,
        )
        await self._audit.record(
            AuditEvent(
                action="enrollment.created",
                actor_id=str(user_id),
                subject_id=str(enrollment.id),
                data={
                    "course_id": str(course_id),
                    "payment_method": payment_method,
                    "price_credits": course.price_credits,
                },
            )
        )
        return enrollment

    async def _replay(
        self, scoped_key: str, user_id: UUID, course_id: UUID
    ) -> CourseEnrollment | None:
        bound = await self._idempotency.get(scoped_key)
        if bound is None:
            return None
        bound_user, bound_course, enrollment_id = bound.split(":")
        if (bound_user, bound_course) != (str(user_id), str(course_id)):
            logger.warning(
                "Idempotency key reused for a different course user=%s course=%s",
                user_id,
                course_id,
            )
            raise IdempotencyConflict()
        enrollment = await self._store.enrollments.get(UUID(enrollment_id))
        if enrollment is None:
            # The first attempt never committed; let this one proceed.
            await self._idempotency.release(scoped_key)
        return enrollment

    async def _settle_and_enroll(
        self, user_id: UUID, course_id: UUID, payment_method: str
    ) -> tuple[CourseEnrollment, Course]:
        async with self._store.transaction():
            course = await self._store.courses.get(course_id)
            if course is None:
                raise CourseNotFound()
            if not course.is_published:
                raise NotAvailable()
            if course.creator_id == user_id:
                logger.warning("Self-enrollment rejected user=%s course=%s", user_id, course_id)
                raise SelfEnrollmentNotAllowed()
            if await self._store.enrollments.get_by_user_and_course(user_id, course_id):
                raise AlreadyEnrolled()
            if payment_method == "money":
                raise NotImplementedPayment()
            if await self._store.users.get(user_id) is None:
                raise UserNotFound()

            price = course.price_credits
            if price > 0:
                await self._ledger.debit_within(
                    user_id,
                    price,
                    "spent",
                    description=f"Enrolled in course: {course.title}",
                    related_id=str(course_id),
                )
                share = creator_share(price)
                if share > 0:
                    await self._ledger.credit_within(
                        course.creator_id,
                        share,
                        "earned",
                        description=f"Course enrollment: {course.title}",
                        related_id=str(course_id),
                    )

            enrollment = CourseEnrollment.new(course_id=course_id, user_id=user_id)
            try:
                await self._store.enrollments.add(enrollment)
            except ValueError:
                raise AlreadyEnrolled() from None
            return enrollment, course

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def report_lesson_progress(
        self,
        enrollment_id: UUID,
        lesson_id: UUID,
        time_spent_delta: int | None = None,
        *,
        requester_id: UUID | None = None,
    ) -> CourseEnrollment:
        """Mark ``lesson_id`` complete for the enrollment and add the time.

        Returns the enrollment with its recomputed progress.
        """
        if time_spent_delta is not None and time_spent_delta < 0:
            raise ValidationError("time_spent cannot be negative")

        async with _progress_locks.hold(enrollment_id):
            outcome = await with_storage_retry(
                lambda: self._record_progress(
                    enrollment_id, lesson_id, time_spent_delta or 0, requester_id
                ),
                name="report_lesson_progress",
            )

        enrollment = outcome.enrollment
        if outcome.lesson_first_completed:
            LESSONS_COMPLETED.inc()
        logger.info(
            "Lesson progress enrollment=%s lesson=%s progress=%d",
            enrollment_id,
            lesson_id,
            enrollment.progress,
        )
        if outcome.course_completed:
            logger.info(
                "Course completed enrollment=%s user=%s course=%s",
                enrollment_id,
                enrollment.user_id,
                enrollment.course_id,
            )
            await self._audit.record(
                AuditEvent(
                    action="enrollment.completed",
                    actor_id=str(enrollment.user_id),
                    subject_id=str(enrollment_id),
                    data={"course_id": str(enrollment.course_id)},
                )
            )
        return enrollment

    async def _record_progress(
        self,
        enrollment_id: UUID,
        lesson_id: UUID,
        time_spent: int,
        requester_id: UUID | None,
    ) -> _ProgressOutcome:
        async with self._store.transaction():
            enrollment = await self._owned_enrollment(
                enrollment_id, requester_id, for_update=True
            )
            lesson = await self._store.courses.get_lesson(lesson_id)
            if lesson is None:
                raise LessonNotFound()
            if lesson.course_id != enrollment.course_id:
                raise LessonNotInCourse()

            now = datetime.now(UTC)
            row = await self._store.enrollments.get_progress(enrollment_id, lesson_id)
            first_completion = row is None or not row.completed
            if row is None:
                row = LessonProgress.new(enrollment_id=enrollment_id, lesson_id=lesson_id)
            row = replace(
                row,
                completed=True,
                completed_at=row.completed_at or now,
                time_spent=row.time_spent + time_spent,
                updated_at=now,
            )
            await self._store.enrollments.save_progress(row)

            if first_completion:
                await self._store.users.add_skill_points(
                    enrollment.user_id, skill_points_for(lesson.duration)
                )

            progress = max(enrollment.progress, await self._compute_progress(enrollment))
            reached = progress >= 100 and enrollment.completed_at is None
            updated = replace(
                enrollment,
                progress=progress,
                completed_at=now if reached else enrollment.completed_at,
            )
            if updated != enrollment:
                await self._store.enrollments.update(updated)

            if reached:
                await self._certification.generate(enrollment_id)
                await self._store.users.add_badge(
                    enrollment.user_id, completion_badge(enrollment.course_id)
                )

            return _ProgressOutcome(updated, first_completion, reached)

    async def _compute_progress(self, enrollment: CourseEnrollment) -> int:
        lessons = await self._store.courses.list_lessons(enrollment.course_id)
        if not lessons:
            return 0
        done = {
            p.lesson_id
            for p in await self._store.enrollments.list_progress(enrollment.id)
            if p.completed
        }
        completed = sum(1 for x in lessons if x.id in done)
        return 100 * completed // len(lessons)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def can_access(self, user_id: UUID, course_id: UUID) -> bool:
        """True for the course creator and for enrolled students."""

        async def _check() -> bool:
            course = await self._store.courses.get(course_id)
            if course is None:
                return False
            if course.creator_id == user_id:
                return True
            enrollment = await self._store.enrollments.get_by_user_and_course(
                user_id, course_id
            )
            return enrollment is not None

        return await with_storage_retry(_check, name="can_access")

    async def get_enrollment(
        self, user_id: UUID, course_id: UUID
    ) -> CourseEnrollment | None:
        return await with_storage_retry(
            lambda: self._store.enrollments.get_by_user_and_course(user_id, course_id),
            name="get_enrollment",
        )

    async def lesson_progress(
        self, enrollment_id: UUID, *, requester_id: UUID | None = None
    ) -> tuple[CourseEnrollment, list[LessonProgress]]:
        async def _read() -> tuple[CourseEnrollment, list[LessonProgress]]:
            enrollment = await self._owned_enrollment(enrollment_id, requester_id)
            rows = await self._store.enrollments.list_progress(enrollment_id)
            rows.sort(key=lambda p: p.created_at)
            return enrollment, rows

        return await with_storage_retry(_read, name="lesson_progress")

    async def enrolled_courses(
        self, user_id: UUID
    ) -> list[tuple[CourseEnrollment, Course]]:
        """The user's enrollments, oldest first, each with its course."""

        async def _read() -> list[tuple[CourseEnrollment, Course]]:
            result = []
            for enrollment in await self._store.enrollments.list_by_user(user_id):
                course = await self._store.courses.get(enrollment.course_id)
                if course is not None:
                    result.append((enrollment, course))
            return result

        return await with_storage_retry(_read, name="enrolled_courses")

    async def _owned_enrollment(
        self,
        enrollment_id: UUID,
        requester_id: UUID | None,
        *,
        for_update: bool = False,
    ) -> CourseEnrollment:
        if for_update:
            enrollment = await self._store.enrollments.get_for_update(enrollment_id)
        else:
            enrollment = await self._store.enrollments.get(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFound()
        if requester_id is not None and enrollment.user_id != requester_id:
            logger.warning(
                "Enrollment access denied user=%s enrollment=%s",
                requester_id,
                enrollment_id,
            )
            raise Forbidden("this enrollment belongs to another user")
        return enrollment
