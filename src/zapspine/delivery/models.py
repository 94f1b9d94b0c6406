"""Scheduled post models (``scheduled_posts`` table).

A scheduled post is a pre-signed event waiting for its publication time.
The worker only transports it; it never signs or modifies the payload.

Tags:
    zap-spine, models, delivery, dataclasses, schema-mapping

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class PostStatus(str, Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    FAILED = "failed"


def to_iso(moment: datetime) -> str:
    """Canonical UTC timestamp text; lexical order equals time order."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="seconds")


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ScheduledPost:
    """Scheduled post row (``scheduled_posts``)."""

    id: str = ""
    user_pubkey: str = ""
    kind: int = 1
    signed_event: dict[str, Any] | None = None
    relays: list[str] = field(default_factory=list)
    scheduled_for: str = ""
    status: str = PostStatus.PENDING.value
    created_at: str = ""
    published_at: str | None = None
    error_message: str | None = None
    retry_count: int = 0

    @property
    def scheduled_datetime(self) -> datetime:
        return datetime.fromisoformat(self.scheduled_for)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_pubkey": self.user_pubkey,
            "kind": self.kind,
            "signed_event": self.signed_event,
            "relays": list(self.relays),
            "scheduled_for": self.scheduled_for,
            "status": self.status,
            "created_at": self.created_at,
            "published_at": self.published_at,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
        }


@dataclass
class ScheduledPostCreate:
    """DTO for scheduling a new post."""

    user_pubkey: str
    signed_event: dict[str, Any]
    relays: list[str]
    scheduled_for: datetime
    kind: int | None = None


@dataclass
class ScheduledPostStats:
    pending: int = 0
    published: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.published + self.failed


@dataclass
class TimeRemaining:
    text: str
    is_past: bool
    seconds: int


def _plural(value: int, unit: str) -> str:
    return f"in {value} {unit}{'s' if value > 1 else ''}"


def time_remaining(scheduled_for: datetime, now: datetime | None = None) -> TimeRemaining:
    """Human-readable countdown to a publication time.

    Examples:
        >>> from datetime import timedelta
        >>> now = utc_now()
        >>> time_remaining(now + timedelta(hours=3, minutes=5), now).text
        'in 3 hours'
    """
    now = now or utc_now()
    if scheduled_for.tzinfo is None:
        scheduled_for = scheduled_for.replace(tzinfo=UTC)
    seconds = int((scheduled_for - now).total_seconds())
    if seconds <= 0:
        return TimeRemaining(text="Due now", is_past=True, seconds=0)

    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        text = _plural(days, "day")
    elif hours > 0:
        text = _plural(hours, "hour")
    elif minutes > 0:
        text = _plural(minutes, "minute")
    else:
        text = _plural(seconds, "second")
    return TimeRemaining(text=text, is_past=False, seconds=seconds)


__all__ = [
    "PostStatus",
    "ScheduledPost",
    "ScheduledPostCreate",
    "ScheduledPostStats",
    "TimeRemaining",
    "time_remaining",
    "to_iso",
    "utc_now",
]
