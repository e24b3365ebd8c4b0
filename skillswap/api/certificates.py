from __future__ import annotations

import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from skillswap.api.dependencies import CurrentUser, get_certification
from skillswap.models.certificate import CourseCertificate
from skillswap.services.certification import CertificationService

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateOut(BaseModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    enrollment_id: UUID
    course_name: str
    completed_at: datetime.datetime
    certificate_url: str


def certificate_out(c: CourseCertificate) -> CertificateOut:
    return CertificateOut(
        id=c.id,
        user_id=c.user_id,
        course_id=c.course_id,
        enrollment_id=c.enrollment_id,
        course_name=c.course_name,
        completed_at=c.completed_at,
        certificate_url=c.certificate_url,
    )


@router.get("", response_model=list[CertificateOut])
async def list_certificates(
    principal: CurrentUser,
    certification: Annotated[CertificationService, Depends(get_certification)],
) -> list[CertificateOut]:
    certificates = await certification.certificates_for_user(principal.user_id)
    return [certificate_out(c) for c in certificates]
