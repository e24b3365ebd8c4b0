"""Certificate issuance for completed enrollments.

``generate`` is idempotent: at most one certificate exists per
enrollment, and every later call returns it.  The enrollment engine
calls it from the completion trigger; clients may also call it
directly, so calls for the same enrollment are serialised.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from skillswap.core.config import SETTINGS
from skillswap.core.errors import (
    CourseNotCompleted,
    CourseNotFound,
    EnrollmentNotFound,
    Forbidden,
)
from skillswap.core.locks import KeyedLock
from skillswap.core.metrics import CERTIFICATES_ISSUED
from skillswap.core.retry import with_storage_retry
from skillswap.models.certificate import CourseCertificate
from skillswap.repos.store import Store
from skillswap.services.audit import AuditEvent, AuditSink, audit_sink

logger = logging.getLogger(__name__)

_certificate_locks = KeyedLock()


def certificate_url(enrollment_id: UUID, base_url: str | None = None) -> str:
    base = (base_url or SETTINGS.certificate_base_url).rstrip("/")
    return f"{base}/{enrollment_id}.pdf"


class CertificationService:
    def __init__(
        self,
        store: Store,
        *,
        audit: AuditSink | None = None,
        base_url: str | None = None,
    ) -> None:
        self._store = store
        self._audit = audit or audit_sink
        self._base_url = base_url

    async def generate(
        self, enrollment_id: UUID, *, requester_id: UUID | None = None
    ) -> CourseCertificate:
        """Return the enrollment's certificate, creating it on first call.

        Raises EnrollmentNotFound, CourseNotCompleted while progress is
        below 100, and Forbidden when ``requester_id`` is given and is not
        the enrolled student.
        """
        async with _certificate_locks.hold(enrollment_id):
            try:
                certificate, created = await with_storage_retry(
                    lambda: self._issue(enrollment_id, requester_id),
                    name="generate certificate",
                )
            except ValueError:
                # Another process inserted the row between our check and insert.
                existing = await self._store.certificates.get_by_enrollment(enrollment_id)
                if existing is None:
                    raise
                return existing

        if created:
            CERTIFICATES_ISSUED.inc()
            logger.info(
                "Certificate issued id=%s enrollment=%s user=%s",
                certificate.id,
                enrollment_id,
                certificate.user_id,
            )
            await self._audit.record(
                AuditEvent(
                    action="certificate.issued",
                    actor_id=str(certificate.user_id),
                    subject_id=str(certificate.id),
                    data={
                        "course_id": str(certificate.course_id),
                        "enrollment_id": str(enrollment_id),
                    },
                )
            )
        return certificate

    async def certificates_for_user(self, user_id: UUID) -> list[CourseCertificate]:
        return await with_storage_retry(
            lambda: self._store.certificates.list_by_user(user_id),
            name="certificates_for_user",
        )

    async def _issue(
        self, enrollment_id: UUID, requester_id: UUID | None
    ) -> tuple[CourseCertificate, bool]:
        async with self._store.transaction():
            enrollment = await self._store.enrollments.get(enrollment_id)
            if enrollment is None:
                raise EnrollmentNotFound()
            if requester_id is not None and enrollment.user_id != requester_id:
                raise Forbidden("certificates can only be requested by the enrolled student")

            existing = await self._store.certificates.get_by_enrollment(enrollment_id)
            if existing is not None:
                return existing, False

            if enrollment.progress < 100:
                raise CourseNotCompleted()
            course = await self._store.courses.get(enrollment.course_id)
            if course is None:
                raise CourseNotFound()

            certificate = CourseCertificate.new(
                user_id=enrollment.user_id,
                course_id=course.id,
                enrollment_id=enrollment_id,
                course_name=course.title,
                completed_at=enrollment.completed_at or datetime.now(UTC),
                certificate_url=certificate_url(enrollment_id, self._base_url),
            )
            await self._store.certificates.add(certificate)
            return certificate, True
