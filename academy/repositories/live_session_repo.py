"""Repository layer for LiveSession persistence and its course links.

Link rows are always replaced wholesale together with the session's own
columns, inside a single commit, so no reader observes a session with an
empty link set mid-update.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy.models.entities import Course, LiveSession, LiveSessionCourse
from academy.models.enums import LinkType
from academy.repositories.errors import RecordNotFoundError, translate_store_errors

# Columns a partial update may touch.
UPDATABLE_FIELDS = {
    "title",
    "description",
    "link_url",
    "link_type",
    "start_date",
    "end_date",
    "is_free",
    "chapter_id",
    "is_published",
}


class LiveSessionNotFoundError(RecordNotFoundError):
    """Raised when a live session record could not be located."""


def _with_courses(include_owner: bool = False):
    course_loader = selectinload(LiveSession.course_links).selectinload(
        LiveSessionCourse.course
    )
    if include_owner:
        course_loader = course_loader.selectinload(Course.user)
    return course_loader


class LiveSessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # READ -------------------------------------------------------------------
    async def get(self, session_id: str) -> LiveSession:
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(LiveSession)
                .options(_with_courses())
                .where(LiveSession.id == session_id)
                .execution_options(populate_existing=True)
            )
        record = result.scalar_one_or_none()
        if not record:
            raise LiveSessionNotFoundError
        return record

    async def list_published_for_course(
        self, course_id: str, chapter_id: Optional[str] = None
    ) -> Sequence[LiveSession]:
        """Published sessions linked to a course, earliest start first."""
        stmt = (
            select(LiveSession)
            .join(
                LiveSessionCourse,
                LiveSessionCourse.live_session_id == LiveSession.id,
            )
            .options(_with_courses())
            .where(
                LiveSessionCourse.course_id == course_id,
                LiveSession.is_published.is_(True),
            )
            .order_by(LiveSession.start_date.asc())
        )
        if chapter_id is not None:
            stmt = stmt.where(LiveSession.chapter_id == chapter_id)
        async with translate_store_errors(self.session):
            result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_owner(self, owner_id: str) -> Sequence[LiveSession]:
        """Sessions linked to at least one course owned by ``owner_id``."""
        owned_links = (
            select(LiveSessionCourse.live_session_id)
            .join(Course, Course.id == LiveSessionCourse.course_id)
            .where(Course.user_id == owner_id)
        )
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(LiveSession)
                .options(_with_courses())
                .where(LiveSession.id.in_(owned_links))
                .order_by(LiveSession.created_at.desc())
            )
        return result.scalars().all()

    async def list_all(self) -> Sequence[LiveSession]:
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(LiveSession)
                .options(_with_courses(include_owner=True))
                .order_by(LiveSession.created_at.desc())
            )
        return result.scalars().all()

    # CREATE -----------------------------------------------------------------
    async def create(
        self,
        title: str,
        link_url: str,
        link_type: LinkType,
        start_date: datetime,
        course_ids: Sequence[str],
        description: Optional[str] = None,
        end_date: Optional[datetime] = None,
        is_free: bool = False,
        chapter_id: Optional[str] = None,
    ) -> LiveSession:
        record = LiveSession(
            title=title,
            description=description,
            link_url=link_url,
            link_type=link_type,
            start_date=start_date,
            end_date=end_date,
            is_free=is_free,
            is_published=False,
            chapter_id=chapter_id,
            course_links=[
                LiveSessionCourse(course_id=course_id)
                for course_id in dict.fromkeys(course_ids)
            ],
        )
        async with translate_store_errors(self.session):
            self.session.add(record)
            await self.session.commit()
        return await self.get(record.id)

    # UPDATE -----------------------------------------------------------------
    async def update(
        self,
        record: LiveSession,
        changes: Dict[str, Any],
        course_ids: Optional[Sequence[str]] = None,
    ) -> LiveSession:
        """Apply column changes and, if given, replace the course link set."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        session_id = record.id
        async with translate_store_errors(self.session):
            if course_ids is not None:
                await self.session.execute(
                    delete(LiveSessionCourse)
                    .where(LiveSessionCourse.live_session_id == session_id)
                    .execution_options(synchronize_session=False)
                )
                if course_ids:
                    await self.session.execute(
                        insert(LiveSessionCourse),
                        [
                            {"live_session_id": session_id, "course_id": course_id}
                            for course_id in dict.fromkeys(course_ids)
                        ],
                    )
            for field, value in changes.items():
                setattr(record, field, value)
            await self.session.commit()
        return await self.get(session_id)

    async def set_published(self, record: LiveSession, is_published: bool) -> LiveSession:
        return await self.update(record, {"is_published": is_published})

    # DELETE -----------------------------------------------------------------
    async def delete(self, record: LiveSession) -> None:
        async with translate_store_errors(self.session):
            await self.session.delete(record)
            await self.session.commit()
