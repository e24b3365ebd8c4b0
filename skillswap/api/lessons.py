"""Lesson edit and delete endpoints (creator only, draft courses only)."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field

from skillswap.api.courses import CatalogDep, ContentType, LessonOut, lesson_out
from skillswap.api.dependencies import CurrentUser

router = APIRouter(prefix="/v1/lessons", tags=["lessons"])


class LessonUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    content_type: ContentType | None = None
    content_url: str | None = None
    duration: int | None = Field(default=None, ge=0)
    order_index: int | None = Field(default=None, ge=0)


@router.patch("/{lesson_id}", response_model=LessonOut)
async def update_lesson(
    lesson_id: UUID,
    body: LessonUpdateIn,
    principal: CurrentUser,
    catalog: CatalogDep,
) -> LessonOut:
    # Only fields the client sent; an explicit null clears content_url/duration.
    updates = body.model_dump(exclude_unset=True)
    lesson = await catalog.update_lesson(lesson_id, principal.user_id, **updates)
    return lesson_out(lesson)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: UUID, principal: CurrentUser, catalog: CatalogDep
) -> Response:
    await catalog.delete_lesson(lesson_id, principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
