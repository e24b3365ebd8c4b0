"""Course catalog endpoints: create, search, read, lessons, publish, enroll.

Drafts are private to their creator: searches only return them when the
caller asks for their own drafts, and reading another creator's draft
answers 404 like a missing course.
"""

from __future__ import annotations

import datetime
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status
from pydantic import BaseModel, Field

from skillswap.api.dependencies import (
    CurrentUser,
    get_catalog,
    get_enrollment_engine,
)
from skillswap.core.errors import CourseNotFound, EnrollmentNotFound, Forbidden
from skillswap.models.course import Course, CourseLesson
from skillswap.models.enrollment import CourseEnrollment
from skillswap.services.course_catalog import CourseCatalog
from skillswap.services.enrollment import EnrollmentEngine

router = APIRouter(prefix="/v1/courses", tags=["courses"])

CatalogDep = Annotated[CourseCatalog, Depends(get_catalog)]
EngineDep = Annotated[EnrollmentEngine, Depends(get_enrollment_engine)]

ContentType = Literal["video", "text", "file"]


# --- Pydantic schemas ---


class CourseCreateIn(BaseModel):
    skill_id: UUID
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    price_credits: int = 0
    price_money: int | None = None


class LessonCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content_type: ContentType
    description: str = Field(default="", max_length=1000)
    content_url: str | None = None
    duration: int | None = Field(default=None, ge=0)
    order_index: int | None = Field(default=None, ge=0)


class EnrollIn(BaseModel):
    payment_method: Literal["credits", "money"] = "credits"


class CourseOut(BaseModel):
    id: UUID
    creator_id: UUID
    skill_id: UUID
    title: str
    description: str
    price_credits: int
    price_money: int | None
    status: str
    total_lessons: int
    total_duration: int
    rating: float
    total_reviews: int
    created_at: datetime.datetime
    updated_at: datetime.datetime


class LessonOut(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    description: str
    content_type: str
    content_url: str | None
    duration: int | None
    order_index: int


class CourseDetailOut(CourseOut):
    lessons: list[LessonOut]


class EnrollmentOut(BaseModel):
    id: UUID
    course_id: UUID
    user_id: UUID
    progress: int
    completed_at: datetime.datetime | None
    created_at: datetime.datetime


def course_out(c: Course) -> CourseOut:
    return CourseOut(
        id=c.id,
        creator_id=c.creator_id,
        skill_id=c.skill_id,
        title=c.title,
        description=c.description,
        price_credits=c.price_credits,
        price_money=c.price_money,
        status=c.status,
        total_lessons=c.total_lessons,
        total_duration=c.total_duration,
        rating=c.rating,
        total_reviews=c.total_reviews,
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


def lesson_out(x: CourseLesson, *, reveal_content: bool = True) -> LessonOut:
    return LessonOut(
        id=x.id,
        course_id=x.course_id,
        title=x.title,
        description=x.description,
        content_type=x.content_type,
        content_url=x.content_url if reveal_content else None,
        duration=x.duration,
        order_index=x.order_index,
    )


def enrollment_out(e: CourseEnrollment) -> EnrollmentOut:
    return EnrollmentOut(
        id=e.id,
        course_id=e.course_id,
        user_id=e.user_id,
        progress=e.progress,
        completed_at=e.completed_at,
        created_at=e.created_at,
    )


# --- Endpoints ---


@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    body: CourseCreateIn, principal: CurrentUser, catalog: CatalogDep
) -> CourseOut:
    course = await catalog.create_course(
        principal.user_id,
        skill_id=body.skill_id,
        title=body.title,
        description=body.description,
        price_credits=body.price_credits,
        price_money=body.price_money,
    )
    return course_out(course)


@router.get("", response_model=list[CourseOut])
async def search_courses(
    principal: CurrentUser,
    catalog: CatalogDep,
    q: str | None = None,
    category: str | None = None,
    min_price: Annotated[int | None, Query(ge=0)] = None,
    max_price: Annotated[int | None, Query(ge=0)] = None,
    course_status: Annotated[
        Literal["draft", "published"], Query(alias="status")
    ] = "published",
    creator_id: UUID | None = None,
) -> list[CourseOut]:
    if course_status == "draft":
        if creator_id is not None and creator_id != principal.user_id:
            raise Forbidden("drafts are only visible to their creator")
        creator_id = principal.user_id
    courses = await catalog.search(
        q,
        category=category,
        min_price=min_price,
        max_price=max_price,
        status=course_status,
        creator_id=creator_id,
    )
    return [course_out(c) for c in courses]


@router.get("/mine", response_model=list[CourseOut])
async def my_courses(principal: CurrentUser, catalog: CatalogDep) -> list[CourseOut]:
    """Every course the caller created, drafts included."""
    return [course_out(c) for c in await catalog.courses_by_creator(principal.user_id)]


@router.get("/{course_id}", response_model=CourseDetailOut)
async def get_course(
    course_id: UUID,
    principal: CurrentUser,
    catalog: CatalogDep,
    engine: EngineDep,
) -> CourseDetailOut:
    course, lessons = await catalog.get_course_with_lessons(course_id)
    if course.is_draft and course.creator_id != principal.user_id:
        raise CourseNotFound()
    reveal = await engine.can_access(principal.user_id, course_id)
    return CourseDetailOut(
        **course_out(course).model_dump(),
        lessons=[lesson_out(x, reveal_content=reveal) for x in lessons],
    )


@router.post(
    "/{course_id}/lessons",
    response_model=LessonOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_lesson(
    course_id: UUID,
    body: LessonCreateIn,
    principal: CurrentUser,
    catalog: CatalogDep,
) -> LessonOut:
    lesson = await catalog.add_lesson(
        course_id,
        principal.user_id,
        title=body.title,
        content_type=body.content_type,
        description=body.description,
        content_url=body.content_url,
        duration=body.duration,
        order_index=body.order_index,
    )
    return lesson_out(lesson)


@router.post("/{course_id}/publish", response_model=CourseOut)
async def publish_course(
    course_id: UUID, principal: CurrentUser, catalog: CatalogDep
) -> CourseOut:
    return course_out(await catalog.publish(course_id, principal.user_id))


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll(
    course_id: UUID,
    principal: CurrentUser,
    engine: EngineDep,
    body: EnrollIn | None = None,
    idempotency_key: Annotated[
        str | None, Header(alias="Idempotency-Key", max_length=255)
    ] = None,
) -> EnrollmentOut:
    payment_method = body.payment_method if body is not None else "credits"
    enrollment = await engine.enroll(
        principal.user_id,
        course_id,
        payment_method,
        idempotency_key=idempotency_key,
    )
    return enrollment_out(enrollment)


@router.get("/{course_id}/enrollment", response_model=EnrollmentOut)
async def my_enrollment(
    course_id: UUID, principal: CurrentUser, engine: EngineDep
) -> EnrollmentOut:
    enrollment = await engine.get_enrollment(principal.user_id, course_id)
    if enrollment is None:
        raise EnrollmentNotFound()
    return enrollment_out(enrollment)
