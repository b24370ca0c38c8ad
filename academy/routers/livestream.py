"""Live sessions router: scheduling, publishing and viewing Zoom/Meet sessions.

Ownership is checked against fresh course rows on every mutating call; see
``academy.policy.access`` for the rules themselves.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from academy.auth.dependencies import get_current_identity, require_admin, require_staff
from academy.db.config import get_session
from academy.models.entities import LiveSession
from academy.models.enums import LinkType
from academy.policy.access import (
    Decision,
    Identity,
    can_assign_courses,
    can_manage_session,
    can_view_session,
    session_status,
)
from academy.repositories.course_repo import ChapterNotFoundError, CourseRepository
from academy.repositories.live_session_repo import (
    LiveSessionNotFoundError,
    LiveSessionRepository,
)
from academy.utils.timeutils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/livestream", tags=["Live Sessions"])


def _required_text(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise ValueError(f"{label} is required")
    return value.strip()


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class LiveSessionCreate(BaseModel):
    title: str
    description: Optional[str] = None
    linkUrl: str
    linkType: LinkType
    startDate: datetime
    endDate: Optional[datetime] = None
    isFree: bool = False
    courseIds: List[str] = Field(..., min_length=1)
    chapterId: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        return _required_text(v, "Title")

    @field_validator("linkUrl")
    @classmethod
    def _link_url(cls, v: str) -> str:
        return _required_text(v, "Link URL")

    @field_validator("description", "chapterId")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return _optional_text(v)

    @field_validator("startDate", "endDate")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)

    @model_validator(mode="after")
    def _window(self):
        if self.endDate is not None and self.endDate < self.startDate:
            raise ValueError("End date must not be before start date")
        return self


class LiveSessionUpdate(BaseModel):
    """Partial update: only fields present in the payload are written."""

    title: Optional[str] = None
    description: Optional[str] = None
    linkUrl: Optional[str] = None
    linkType: Optional[LinkType] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    isFree: Optional[bool] = None
    courseIds: Optional[List[str]] = Field(None, min_length=1)
    chapterId: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: Optional[str]) -> str:
        return _required_text(v, "Title")

    @field_validator("linkUrl")
    @classmethod
    def _link_url(cls, v: Optional[str]) -> str:
        return _required_text(v, "Link URL")

    @field_validator("description", "chapterId")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return _optional_text(v)

    @field_validator("startDate", "endDate")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(v)

    @model_validator(mode="after")
    def _non_nullable(self):
        for name in ("linkType", "startDate", "isFree", "courseIds"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class PublishToggle(BaseModel):
    isPublished: Union[bool, str, None] = None

    @property
    def value(self) -> bool:
        return self.isPublished is True or self.isPublished == "true"


# Column names for the wire fields a partial update may carry.
_FIELD_COLUMNS = {
    "title": "title",
    "description": "description",
    "linkUrl": "link_url",
    "linkType": "link_type",
    "startDate": "start_date",
    "endDate": "end_date",
    "isFree": "is_free",
    "chapterId": "chapter_id",
}

# Helpers ------------------------------------------------------------------


def session_out(
    record: LiveSession,
    now: Optional[datetime] = None,
    include_owner: bool = False,
) -> dict:
    """Flattened session payload with its derived status attached."""
    payload = record.to_dict(include_owner=include_owner)
    now = now or utcnow()
    payload["status"] = session_status(now, record.start_date, record.end_date).value
    return payload


def _enforce(decision: Decision, identity: Identity, action: str) -> None:
    if not decision:
        logger.warning(
            "Denied %s for user %s (%s): %s",
            action,
            identity.user_id,
            identity.role.value,
            decision.reason,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.reason)


async def _load(repo: LiveSessionRepository, session_id: str) -> LiveSession:
    try:
        return await repo.get(session_id)
    except LiveSessionNotFoundError:
        raise HTTPException(status_code=404, detail="Livestream not found")


async def _check_courses(
    courses_repo: CourseRepository, identity: Identity, course_ids: List[str]
) -> None:
    courses = await courses_repo.get_many(course_ids)
    if len(courses) != len(set(course_ids)):
        raise HTTPException(status_code=404, detail="One or more courses not found")
    _enforce(can_assign_courses(identity, courses), identity, "course assignment")


async def _check_chapter(
    courses_repo: CourseRepository, chapter_id: str, course_ids: List[str]
) -> None:
    try:
        chapter = await courses_repo.get_chapter(chapter_id)
    except ChapterNotFoundError:
        raise HTTPException(status_code=404, detail="Chapter not found")
    if chapter.course_id not in course_ids:
        raise HTTPException(
            status_code=400,
            detail="Chapter must belong to one of the selected courses",
        )


async def _get_repo(session: AsyncSession = Depends(get_session)) -> LiveSessionRepository:
    return LiveSessionRepository(session)


async def _get_course_repo(session: AsyncSession = Depends(get_session)) -> CourseRepository:
    return CourseRepository(session)

# Routes -------------------------------------------------------------------


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_live_session(
    payload: LiveSessionCreate,
    identity: Identity = Depends(require_staff),
    repo: LiveSessionRepository = Depends(_get_repo),
    courses_repo: CourseRepository = Depends(_get_course_repo),
):
    await _check_courses(courses_repo, identity, payload.courseIds)
    if payload.chapterId:
        await _check_chapter(courses_repo, payload.chapterId, payload.courseIds)

    record = await repo.create(
        title=payload.title,
        description=payload.description,
        link_url=payload.linkUrl,
        link_type=payload.linkType,
        start_date=payload.startDate,
        end_date=payload.endDate,
        is_free=payload.isFree,
        chapter_id=payload.chapterId,
        course_ids=payload.courseIds,
    )
    logger.info("Live session %s created by %s", record.id, identity.user_id)
    return session_out(record)


@router.get("/teacher")
async def list_teacher_sessions(
    identity: Identity = Depends(get_current_identity),
    repo: LiveSessionRepository = Depends(_get_repo),
):
    now = utcnow()
    return [session_out(r, now) for r in await repo.list_for_owner(identity.user_id)]


@router.get("/admin")
async def list_all_sessions(
    identity: Identity = Depends(require_admin),
    repo: LiveSessionRepository = Depends(_get_repo),
):
    now = utcnow()
    return [session_out(r, now, include_owner=True) for r in await repo.list_all()]


@router.get("/{session_id}")
async def get_live_session(
    session_id: str,
    identity: Identity = Depends(get_current_identity),
    repo: LiveSessionRepository = Depends(_get_repo),
    courses_repo: CourseRepository = Depends(_get_course_repo),
):
    record = await _load(repo, session_id)
    purchased = set()
    if not identity.is_admin and not identity.is_teacher:
        purchased = await courses_repo.active_purchase_course_ids(
            identity.user_id, record.course_ids
        )
    _enforce(
        can_view_session(identity, record, record.courses, purchased),
        identity,
        "session view",
    )
    return session_out(record)


@router.patch("/{session_id}")
async def update_live_session(
    session_id: str,
    payload: LiveSessionUpdate,
    identity: Identity = Depends(require_staff),
    repo: LiveSessionRepository = Depends(_get_repo),
    courses_repo: CourseRepository = Depends(_get_course_repo),
):
    record = await _load(repo, session_id)
    _enforce(can_manage_session(identity, record.courses), identity, "session update")

    supplied = payload.model_fields_set
    if payload.courseIds is not None:
        await _check_courses(courses_repo, identity, payload.courseIds)
    final_course_ids = payload.courseIds or record.course_ids

    if "chapterId" in supplied:
        if payload.chapterId:
            await _check_chapter(courses_repo, payload.chapterId, final_course_ids)
    elif payload.courseIds is not None and record.chapter_id:
        await _check_chapter(courses_repo, record.chapter_id, final_course_ids)

    start = payload.startDate if "startDate" in supplied else record.start_date
    end = payload.endDate if "endDate" in supplied else record.end_date
    if end is not None and end < start:
        raise HTTPException(status_code=400, detail="End date must not be before start date")

    changes = {
        _FIELD_COLUMNS[name]: getattr(payload, name)
        for name in supplied
        if name in _FIELD_COLUMNS
    }
    updated = await repo.update(record, changes, course_ids=payload.courseIds)
    logger.info(
        "Live session %s updated by %s (fields: %s)",
        session_id,
        identity.user_id,
        sorted(supplied),
    )
    return session_out(updated)


@router.patch("/{session_id}/publish")
async def publish_live_session(
    session_id: str,
    payload: PublishToggle,
    identity: Identity = Depends(require_staff),
    repo: LiveSessionRepository = Depends(_get_repo),
):
    record = await _load(repo, session_id)
    _enforce(can_manage_session(identity, record.courses), identity, "session publish")
    updated = await repo.set_published(record, payload.value)
    logger.info(
        "Live session %s publish=%s by %s", session_id, updated.is_published, identity.user_id
    )
    return session_out(updated)


@router.delete("/{session_id}")
async def delete_live_session(
    session_id: str,
    identity: Identity = Depends(require_staff),
    repo: LiveSessionRepository = Depends(_get_repo),
):
    record = await _load(repo, session_id)
    _enforce(can_manage_session(identity, record.courses), identity, "session delete")
    await repo.delete(record)
    logger.info("Live session %s deleted by %s", session_id, identity.user_id)
    return {"success": True}
