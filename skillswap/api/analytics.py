"""Creator analytics endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from skillswap.api.dependencies import CurrentUser, get_analytics
from skillswap.services.analytics import AnalyticsProjector

router = APIRouter(tags=["analytics"])

AnalyticsDep = Annotated[AnalyticsProjector, Depends(get_analytics)]


class MonthlyEnrollmentsOut(BaseModel):
    month: str
    count: int


class LessonCompletionOut(BaseModel):
    lesson_id: UUID
    title: str
    completion_rate: float


class CourseAnalyticsOut(BaseModel):
    course_id: UUID
    title: str
    total_enrollments: int
    completion_rate: float
    average_progress: float
    average_rating: float
    total_revenue: int
    enrollments_by_month: list[MonthlyEnrollmentsOut]
    per_lesson_completion_rate: list[LessonCompletionOut]


class CreatorAnalyticsOut(BaseModel):
    creator_id: UUID
    total_revenue: int
    total_students: int
    average_rating: float
    courses: list[CourseAnalyticsOut]


@router.get("/v1/courses/{course_id}/analytics", response_model=CourseAnalyticsOut)
async def course_analytics(
    course_id: UUID, principal: CurrentUser, analytics: AnalyticsDep
) -> CourseAnalyticsOut:
    result = await analytics.course_analytics(course_id, principal.user_id)
    return CourseAnalyticsOut.model_validate(asdict(result))


@router.get("/v1/analytics/creator", response_model=CreatorAnalyticsOut)
async def creator_analytics(
    principal: CurrentUser, analytics: AnalyticsDep
) -> CreatorAnalyticsOut:
    result = await analytics.creator_analytics(principal.user_id)
    return CreatorAnalyticsOut.model_validate(asdict(result))
