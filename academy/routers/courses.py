"""Courses router: public catalog, teacher course management, purchases and
the student-facing live session listings of a course or chapter.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from academy.auth.dependencies import get_current_identity, require_staff
from academy.db.config import get_session
from academy.models.entities import Course
from academy.policy.access import (
    Identity,
    can_manage_course,
    course_is_free,
    has_course_access,
    is_listed_for_student,
)
from academy.repositories.course_repo import (
    ChapterNotFoundError,
    CourseNotFoundError,
    CourseRepository,
)
from academy.repositories.errors import StoreUnavailableError
from academy.repositories.live_session_repo import LiveSessionRepository
from academy.routers.livestream import session_out
from academy.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["Courses"])


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    if not v.strip():
        raise ValueError("Title is required")
    return v.strip()


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    isPublished: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: Optional[float] = Field(None, ge=0)
    isPublished: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)


class ChapterCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    position: Optional[int] = Field(None, ge=0)
    isPublished: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)


class ChapterUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    position: Optional[int] = Field(None, ge=0)
    isPublished: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)

# Helpers ------------------------------------------------------------------


async def _get_repo(session: AsyncSession = Depends(get_session)) -> CourseRepository:
    return CourseRepository(session)


async def _get_session_repo(
    session: AsyncSession = Depends(get_session),
) -> LiveSessionRepository:
    return LiveSessionRepository(session)


async def _load_course(
    repo: CourseRepository, course_id: str, published_only: bool = False
) -> Course:
    try:
        return await repo.get(course_id, published_only=published_only)
    except CourseNotFoundError:
        raise HTTPException(status_code=404, detail="Course not found")


async def _load_managed_course(
    repo: CourseRepository, course_id: str, identity: Identity
) -> Course:
    course = await _load_course(repo, course_id)
    decision = can_manage_course(identity, course)
    if not decision:
        logger.warning("Denied course %s management to %s", course_id, identity.user_id)
        raise HTTPException(status_code=403, detail=decision.reason)
    return course

# Catalog ------------------------------------------------------------------


@router.get("/public")
async def list_public_courses(repo: CourseRepository = Depends(_get_repo)):
    """Published courses, newest first. An unreachable store yields ``[]``."""
    try:
        courses = await repo.list_published()
    except StoreUnavailableError as exc:
        logger.warning("Public course listing unavailable, returning empty list: %s", exc)
        return []
    return [
        {
            **course.to_dict(),
            "user": {"id": course.user.id, "fullName": course.user.full_name},
            "chapters": [
                {"id": chapter.id} for chapter in course.chapters if chapter.is_published
            ],
            "progress": 0,
        }
        for course in courses
    ]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseCreate,
    identity: Identity = Depends(require_staff),
    repo: CourseRepository = Depends(_get_repo),
):
    course = await repo.create(
        owner_id=identity.user_id,
        title=payload.title,
        description=payload.description,
        price=payload.price,
        is_published=payload.isPublished,
    )
    logger.info("Course %s created by %s", course.id, identity.user_id)
    return course.to_dict()


@router.patch("/{course_id}")
async def update_course(
    course_id: str,
    payload: CourseUpdate,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
):
    course = await _load_managed_course(repo, course_id, identity)
    changes = {}
    if "description" in payload.model_fields_set:
        changes["description"] = payload.description
    if "price" in payload.model_fields_set:
        changes["price"] = payload.price
    course = await repo.update(
        course,
        title=payload.title,
        is_published=payload.isPublished,
        **changes,
    )
    return course.to_dict()


@router.delete("/{course_id}")
async def delete_course(
    course_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
):
    course = await _load_managed_course(repo, course_id, identity)
    await repo.delete(course)
    logger.info("Course %s deleted by %s", course_id, identity.user_id)
    return {"success": True}

# Chapters -----------------------------------------------------------------


@router.post("/{course_id}/chapters", status_code=status.HTTP_201_CREATED)
async def create_chapter(
    course_id: str,
    payload: ChapterCreate,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
):
    await _load_managed_course(repo, course_id, identity)
    chapter = await repo.create_chapter(
        course_id=course_id,
        title=payload.title,
        position=payload.position,
        is_published=payload.isPublished,
    )
    return chapter.to_dict()


@router.patch("/{course_id}/chapters/{chapter_id}")
async def update_chapter(
    course_id: str,
    chapter_id: str,
    payload: ChapterUpdate,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
):
    await _load_managed_course(repo, course_id, identity)
    try:
        chapter = await repo.get_chapter(chapter_id)
    except ChapterNotFoundError:
        raise HTTPException(status_code=404, detail="Chapter not found")
    if chapter.course_id != course_id:
        raise HTTPException(status_code=404, detail="Chapter not found")
    chapter = await repo.update_chapter(
        chapter,
        title=payload.title,
        position=payload.position,
        is_published=payload.isPublished,
    )
    return chapter.to_dict()

# Purchases ----------------------------------------------------------------


@router.post("/{course_id}/purchase", status_code=status.HTTP_201_CREATED)
async def purchase_course(
    course_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
):
    course = await _load_course(repo, course_id, published_only=True)
    if course_is_free(course.price):
        raise HTTPException(status_code=400, detail="Course is free")
    purchase = await repo.purchase(identity.user_id, course.id)
    logger.info("Course %s purchased by %s", course_id, identity.user_id)
    return purchase.to_dict()

# Live sessions ------------------------------------------------------------


@router.get("/{course_id}/live")
async def list_course_live_sessions(
    course_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
    sessions: LiveSessionRepository = Depends(_get_session_repo),
):
    course = await _load_course(repo, course_id, published_only=True)
    purchased = await repo.active_purchase_course_ids(identity.user_id, [course.id])
    access = has_course_access(course, purchased)

    now = utcnow()
    records = await sessions.list_published_for_course(course.id)
    return [
        session_out(record, now)
        for record in records
        if is_listed_for_student(now, record, access)
    ]


@router.get("/{course_id}/chapters/{chapter_id}/livestreams")
async def list_chapter_live_sessions(
    course_id: str,
    chapter_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: CourseRepository = Depends(_get_repo),
    sessions: LiveSessionRepository = Depends(_get_session_repo),
):
    course = await _load_course(repo, course_id, published_only=True)
    purchased = await repo.active_purchase_course_ids(identity.user_id, [course.id])
    if not has_course_access(course, purchased):
        raise HTTPException(
            status_code=403, detail="You don't have access to this course"
        )

    now = utcnow()
    records = await sessions.list_published_for_course(course.id, chapter_id=chapter_id)
    return [
        session_out(record, now)
        for record in records
        if is_listed_for_student(now, record, True)
    ]
