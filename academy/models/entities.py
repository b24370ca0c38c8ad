"""SQLAlchemy ORM models for persisted entities.

Request/response shapes live next to the routers that use them; this layer
manages persistence concerns only. ``to_dict`` renders the camelCase wire
shape shared by every endpoint.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from academy.models.enums import LinkType, PurchaseStatus, Role
from academy.utils.timeutils import isoformat_utc, utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    full_name: Mapped[str] = mapped_column(String(200))
    phone_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    parent_phone_number: Mapped[str] = mapped_column(
        String(32), unique=True, index=True
    )
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[Role] = mapped_column(
        Enum(Role, native_enum=False, length=16), default=Role.USER
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fullName": self.full_name,
            "phoneNumber": self.phone_number,
            "parentPhoneNumber": self.parent_phone_number,
            "role": self.role.value,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    user: Mapped[User] = relationship(lazy="raise")
    chapters: Mapped[List["Chapter"]] = relationship(
        back_populates="course",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chapter.position",
        lazy="raise",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "isPublished": self.is_published,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }

    def to_ref(self) -> dict:
        return {"id": self.id, "title": self.title}


class Chapter(Base):
    __tablename__ = "chapters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[str] = mapped_column(String(200))
    position: Mapped[int] = mapped_column(Integer, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    course: Mapped[Course] = relationship(back_populates="chapters", lazy="raise")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "courseId": self.course_id,
            "title": self.title,
            "position": self.position,
            "isPublished": self.is_published,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_purchases_user_course"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), index=True
    )
    status: Mapped[PurchaseStatus] = mapped_column(
        Enum(PurchaseStatus, native_enum=False, length=16),
        default=PurchaseStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    course: Mapped[Course] = relationship(lazy="raise")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "courseId": self.course_id,
            "status": self.status.value,
            "createdAt": isoformat_utc(self.created_at),
        }


class LiveSessionCourse(Base):
    """Join row linking a live session to one of its target courses."""

    __tablename__ = "live_session_courses"

    live_session_id: Mapped[str] = mapped_column(
        ForeignKey("live_sessions.id", ondelete="CASCADE"), primary_key=True
    )
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True, index=True
    )

    course: Mapped[Course] = relationship(lazy="raise")


class LiveSession(Base):
    __tablename__ = "live_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_url: Mapped[str] = mapped_column(String(2048))
    link_type: Mapped[LinkType] = mapped_column(
        Enum(LinkType, native_enum=False, length=16)
    )
    start_date: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    chapter_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    course_links: Mapped[List[LiveSessionCourse]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    @property
    def courses(self) -> List[Course]:
        return [link.course for link in self.course_links]

    @property
    def course_ids(self) -> List[str]:
        return [link.course_id for link in self.course_links]

    def to_dict(self, include_owner: bool = False) -> dict:
        courses = []
        for course in self.courses:
            ref = course.to_ref()
            if include_owner:
                ref["user"] = {"id": course.user.id, "fullName": course.user.full_name}
            courses.append(ref)
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "linkUrl": self.link_url,
            "linkType": self.link_type.value,
            "startDate": isoformat_utc(self.start_date),
            "endDate": isoformat_utc(self.end_date),
            "isFree": self.is_free,
            "isPublished": self.is_published,
            "chapterId": self.chapter_id,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
            "courses": courses,
        }
