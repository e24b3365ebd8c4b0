"""Enrollment endpoints for the enrolled student: listing, progress, certificate."""

from __future__ import annotations

import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from skillswap.api.certificates import CertificateOut, certificate_out
from skillswap.api.courses import (
    CourseOut,
    EngineDep,
    EnrollmentOut,
    course_out,
    enrollment_out,
)
from skillswap.api.dependencies import CurrentUser, get_certification
from skillswap.services.certification import CertificationService

router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])

CertificationDep = Annotated[CertificationService, Depends(get_certification)]


class EnrolledCourseOut(BaseModel):
    enrollment: EnrollmentOut
    course: CourseOut


class ProgressIn(BaseModel):
    time_spent: int | None = Field(default=None, ge=0)


class LessonProgressOut(BaseModel):
    lesson_id: UUID
    completed: bool
    completed_at: datetime.datetime | None
    time_spent: int
    updated_at: datetime.datetime


class EnrollmentProgressOut(BaseModel):
    enrollment: EnrollmentOut
    lessons: list[LessonProgressOut]


@router.get("", response_model=list[EnrolledCourseOut])
async def list_enrollments(
    principal: CurrentUser, engine: EngineDep
) -> list[EnrolledCourseOut]:
    pairs = await engine.enrolled_courses(principal.user_id)
    return [
        EnrolledCourseOut(enrollment=enrollment_out(e), course=course_out(c))
        for e, c in pairs
    ]


@router.get("/{enrollment_id}/progress", response_model=EnrollmentProgressOut)
async def get_progress(
    enrollment_id: UUID, principal: CurrentUser, engine: EngineDep
) -> EnrollmentProgressOut:
    enrollment, rows = await engine.lesson_progress(
        enrollment_id, requester_id=principal.user_id
    )
    return EnrollmentProgressOut(
        enrollment=enrollment_out(enrollment),
        lessons=[
            LessonProgressOut(
                lesson_id=p.lesson_id,
                completed=p.completed,
                completed_at=p.completed_at,
                time_spent=p.time_spent,
                updated_at=p.updated_at,
            )
            for p in rows
        ],
    )


@router.post(
    "/{enrollment_id}/lessons/{lesson_id}/progress", response_model=EnrollmentOut
)
async def report_progress(
    enrollment_id: UUID,
    lesson_id: UUID,
    principal: CurrentUser,
    engine: EngineDep,
    body: ProgressIn | None = None,
) -> EnrollmentOut:
    enrollment = await engine.report_lesson_progress(
        enrollment_id,
        lesson_id,
        body.time_spent if body is not None else None,
        requester_id=principal.user_id,
    )
    return enrollment_out(enrollment)


@router.post("/{enrollment_id}/certificate", response_model=CertificateOut)
async def generate_certificate(
    enrollment_id: UUID,
    principal: CurrentUser,
    certification: CertificationDep,
) -> CertificateOut:
    certificate = await certification.generate(
        enrollment_id, requester_id=principal.user_id
    )
    return certificate_out(certificate)
