"""Repository layer for Course, Chapter and Purchase persistence.

Keeps routers thin: every query the course and live-session routers need
about catalog entries and purchase state is centralized here.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from academy.models.entities import Chapter, Course, Purchase
from academy.models.enums import PurchaseStatus
from academy.repositories.errors import RecordNotFoundError, translate_store_errors

_UNSET = object()


class CourseNotFoundError(RecordNotFoundError):
    """Raised when a course record could not be located."""


class ChapterNotFoundError(RecordNotFoundError):
    """Raised when a chapter record could not be located."""


class CourseRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # READ -------------------------------------------------------------------
    async def get(self, course_id: str, published_only: bool = False) -> Course:
        stmt = select(Course).where(Course.id == course_id)
        if published_only:
            stmt = stmt.where(Course.is_published.is_(True))
        async with translate_store_errors(self.session):
            result = await self.session.execute(stmt)
        course = result.scalar_one_or_none()
        if not course:
            raise CourseNotFoundError
        return course

    async def get_many(self, course_ids: Iterable[str]) -> Sequence[Course]:
        """Fetch the distinct courses named; callers compare counts."""
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(Course).where(Course.id.in_(set(course_ids)))
            )
        return result.scalars().all()

    async def list_published(self) -> Sequence[Course]:
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(Course)
                .options(selectinload(Course.user), selectinload(Course.chapters))
                .where(Course.is_published.is_(True))
                .order_by(Course.created_at.desc())
            )
        return result.scalars().all()

    async def active_purchase_course_ids(
        self, user_id: str, course_ids: Optional[Iterable[str]] = None
    ) -> Set[str]:
        stmt = select(Purchase.course_id).where(
            Purchase.user_id == user_id,
            Purchase.status == PurchaseStatus.ACTIVE,
        )
        if course_ids is not None:
            stmt = stmt.where(Purchase.course_id.in_(set(course_ids)))
        async with translate_store_errors(self.session):
            result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def get_chapter(self, chapter_id: str) -> Chapter:
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(Chapter).where(Chapter.id == chapter_id)
            )
        chapter = result.scalar_one_or_none()
        if not chapter:
            raise ChapterNotFoundError
        return chapter

    # CREATE -----------------------------------------------------------------
    async def create(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        price: Optional[float] = None,
        is_published: bool = False,
    ) -> Course:
        course = Course(
            user_id=owner_id,
            title=title,
            description=description,
            price=price,
            is_published=is_published,
        )
        async with translate_store_errors(self.session):
            self.session.add(course)
            await self.session.commit()
            await self.session.refresh(course)
        return course

    async def create_chapter(
        self,
        course_id: str,
        title: str,
        position: Optional[int] = None,
        is_published: bool = False,
    ) -> Chapter:
        if position is None:
            async with translate_store_errors(self.session):
                result = await self.session.execute(
                    select(Chapter.position)
                    .where(Chapter.course_id == course_id)
                    .order_by(Chapter.position.desc())
                    .limit(1)
                )
            last = result.scalar_one_or_none()
            position = 0 if last is None else last + 1
        chapter = Chapter(
            course_id=course_id,
            title=title,
            position=position,
            is_published=is_published,
        )
        async with translate_store_errors(self.session):
            self.session.add(chapter)
            await self.session.commit()
            await self.session.refresh(chapter)
        return chapter

    async def purchase(self, user_id: str, course_id: str) -> Purchase:
        """Create or reactivate the caller's purchase of a course."""
        async with translate_store_errors(self.session):
            result = await self.session.execute(
                select(Purchase).where(
                    Purchase.user_id == user_id,
                    Purchase.course_id == course_id,
                )
            )
        purchase = result.scalar_one_or_none()
        if purchase is None:
            purchase = Purchase(user_id=user_id, course_id=course_id)
            self.session.add(purchase)
        elif purchase.status == PurchaseStatus.ACTIVE:
            return purchase
        else:
            purchase.status = PurchaseStatus.ACTIVE
        async with translate_store_errors(self.session, "Course already purchased"):
            await self.session.commit()
            await self.session.refresh(purchase)
        return purchase

    # UPDATE -----------------------------------------------------------------
    async def update(
        self,
        course: Course,
        title: Optional[str] = None,
        description=_UNSET,
        price=_UNSET,
        is_published: Optional[bool] = None,
    ) -> Course:
        if title is not None:
            course.title = title
        if description is not _UNSET:
            course.description = description
        if price is not _UNSET:
            course.price = price
        if is_published is not None:
            course.is_published = is_published
        async with translate_store_errors(self.session):
            await self.session.commit()
            await self.session.refresh(course)
        return course

    async def update_chapter(
        self,
        chapter: Chapter,
        title: Optional[str] = None,
        position: Optional[int] = None,
        is_published: Optional[bool] = None,
    ) -> Chapter:
        if title is not None:
            chapter.title = title
        if position is not None:
            chapter.position = position
        if is_published is not None:
            chapter.is_published = is_published
        async with translate_store_errors(self.session):
            await self.session.commit()
            await self.session.refresh(chapter)
        return chapter

    # DELETE -----------------------------------------------------------------
    async def delete(self, course: Course) -> None:
        async with translate_store_errors(self.session):
            await self.session.delete(course)
            await self.session.commit()
