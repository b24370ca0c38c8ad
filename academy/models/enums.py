"""Closed value sets shared by the ORM, the policy layer and the routers."""
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


class PurchaseStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class LinkType(str, Enum):
    ZOOM = "ZOOM"
    GOOGLE_MEET = "GOOGLE_MEET"


class SessionStatus(str, Enum):
    """Derived from the clock and the session window; never persisted."""

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    ENDED = "ended"
