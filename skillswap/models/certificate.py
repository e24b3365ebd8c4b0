from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class CourseCertificate:
    id: UUID
    user_id: UUID
    course_id: UUID
    enrollment_id: UUID
    course_name: str
    completed_at: datetime
    certificate_url: str

    @staticmethod
    def new(
        *,
        user_id: UUID,
        course_id: UUID,
        enrollment_id: UUID,
        course_name: str,
        completed_at: datetime,
        certificate_url: str,
    ) -> CourseCertificate:
        return CourseCertificate(
            id=uuid4(),
            user_id=user_id,
            course_id=course_id,
            enrollment_id=enrollment_id,
            course_name=course_name,
            completed_at=completed_at,
            certificate_url=certificate_url,
        )
