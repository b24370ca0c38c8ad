"""Access policy for courses and live sessions.

Every function here is pure: callers load the records (and the caller's
ACTIVE purchases) fresh from the store and pass them in explicitly. Nothing
is cached between requests, so each check reflects the rows read in the same
request.

Two ownership rules coexist on purpose:

* managing an existing live session (update, delete, publish) needs the
  teacher to own *at least one* of its linked courses;
* choosing which courses a session is attached to (create, or replacing
  the link set on update) needs the teacher to own *every* course named.

Admins pass both.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import AbstractSet, Iterable, Optional

from academy.models.entities import Course, LiveSession
from academy.models.enums import Role, SessionStatus


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as resolved from the bearer token."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


def is_staff(identity: Identity) -> bool:
    return identity.is_admin or identity.is_teacher


# Courses ------------------------------------------------------------------


def course_is_free(price: Optional[float]) -> bool:
    return price is None or price == 0


def has_course_access(course: Course, purchased_course_ids: AbstractSet[str]) -> bool:
    """Free course, or the caller holds an ACTIVE purchase for it."""
    return course_is_free(course.price) or course.id in purchased_course_ids


def can_manage_course(identity: Identity, course: Course) -> Decision:
    if identity.is_admin:
        return Decision.allow()
    if identity.is_teacher and course.user_id == identity.user_id:
        return Decision.allow()
    return Decision.deny("Unauthorized: You don't own this course")


# Live session lifecycle ---------------------------------------------------


def session_status(
    now: datetime, start_date: datetime, end_date: Optional[datetime]
) -> SessionStatus:
    if now < start_date:
        return SessionStatus.NOT_STARTED
    if end_date is not None and now > end_date:
        return SessionStatus.ENDED
    return SessionStatus.ACTIVE


def has_not_ended(
    now: datetime, start_date: datetime, end_date: Optional[datetime]
) -> bool:
    """Listing filter: anything whose derived status is not yet ``ended``."""
    return session_status(now, start_date, end_date) != SessionStatus.ENDED


# Live session access ------------------------------------------------------


def is_listed_for_student(
    now: datetime, session: LiveSession, course_access: bool
) -> bool:
    """Whether a session shows up in a student's per-course listing."""
    if not session.is_published:
        return False
    if not has_not_ended(now, session.start_date, session.end_date):
        return False
    return session.is_free or course_access


def can_view_session(
    identity: Identity,
    session: LiveSession,
    linked_courses: Iterable[Course],
    purchased_course_ids: AbstractSet[str],
) -> Decision:
    linked_courses = list(linked_courses)
    if identity.is_admin:
        return Decision.allow()
    if identity.is_teacher:
        if owns_any(identity, linked_courses):
            return Decision.allow()
        return Decision.deny("Unauthorized")

    if not session.is_published:
        return Decision.deny("Unauthorized")
    if session.is_free:
        return Decision.allow()
    if any(
        course.is_published and has_course_access(course, purchased_course_ids)
        for course in linked_courses
    ):
        return Decision.allow()
    return Decision.deny("Unauthorized")


def owns_any(identity: Identity, courses: Iterable[Course]) -> bool:
    return any(course.user_id == identity.user_id for course in courses)


def can_manage_session(identity: Identity, linked_courses: Iterable[Course]) -> Decision:
    if identity.is_admin:
        return Decision.allow()
    if not identity.is_teacher:
        return Decision.deny("Forbidden")
    if owns_any(identity, linked_courses):
        return Decision.allow()
    return Decision.deny("Unauthorized: You don't own this livestream")


def can_assign_courses(identity: Identity, courses: Iterable[Course]) -> Decision:
    if identity.is_admin:
        return Decision.allow()
    if not identity.is_teacher:
        return Decision.deny("Forbidden")
    if all(course.user_id == identity.user_id for course in courses):
        return Decision.allow()
    return Decision.deny("Unauthorized: You don't own one or more courses")
