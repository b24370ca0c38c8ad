"""Timestamp helpers.

Timestamps are persisted as naive UTC. Aware values coming off the wire are
converted to UTC first; naive values are taken to already be UTC.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as ISO-8601 with an explicit UTC offset."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()
