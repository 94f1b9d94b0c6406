"""Time windows over record timestamps.

A ``TimeWindow`` restricts a view to ``[since, until]``. Preset windows
(``24h``, ``7d``, ``30d``, ``90d``, ``1y``, ``all``) are relative to "now"
and bounded only below; custom windows are bounded on both ends.

Filtering semantics::

    preset:  since <= t                      (no upper bound)
    custom:  since <= t <= until             (both inclusive)
    since absent → unbounded into the past

Tags:
    zap-spine, time-window, filtering, temporal

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time as dt_time

from zapspine.core.errors import IncompleteWindowError
from zapspine.core.models import Record

HOUR = 3600
DAY = 24 * HOUR

PRESET_SPANS: dict[str, int | None] = {
    "24h": DAY,
    "7d": 7 * DAY,
    "30d": 30 * DAY,
    "90d": 90 * DAY,
    "1y": 365 * DAY,
    "all": None,
}

CUSTOM = "custom"


@dataclass(frozen=True)
class CustomRange:
    """User-selected calendar range; either end may still be unset."""

    start: date | None = None
    end: date | None = None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True)
class TimeWindow:
    """Resolved ``[since, until]`` range in epoch seconds."""

    since: int | None = None
    until: int | None = None
    is_custom: bool = False
    range_name: str = "7d"

    def contains(self, timestamp: int) -> bool:
        if self.since is not None and timestamp < self.since:
            return False
        if self.is_custom and self.until is not None and timestamp > self.until:
            return False
        return True

    def span_seconds(self, now: int) -> int | None:
        """Width of the window, or None when unbounded into the past."""
        if self.since is None:
            return None
        upper = self.until if (self.is_custom and self.until is not None) else now
        return max(upper - self.since, 0)


def resolve_window(
    range_name: str,
    custom: CustomRange | None = None,
    now: int | None = None,
) -> TimeWindow:
    """Resolve a named range (or custom dates) into a ``TimeWindow``.

    Raises:
        IncompleteWindowError: custom range without both dates
        ValueError: unknown range name
    """
    if now is None:
        now = int(time.time())

    if range_name == CUSTOM:
        if custom is None or not custom.is_complete:
            raise IncompleteWindowError()
        since = int(datetime.combine(custom.start, dt_time.min, tzinfo=UTC).timestamp())
        until = int(datetime.combine(custom.end, dt_time.max, tzinfo=UTC).timestamp())
        if until < since:
            since, until = (
                int(datetime.combine(custom.end, dt_time.min, tzinfo=UTC).timestamp()),
                int(datetime.combine(custom.start, dt_time.max, tzinfo=UTC).timestamp()),
            )
        return TimeWindow(since=since, until=until, is_custom=True, range_name=CUSTOM)

    if range_name not in PRESET_SPANS:
        raise ValueError(f"Unknown time range: {range_name!r}")

    span = PRESET_SPANS[range_name]
    since = now - span if span is not None else None
    return TimeWindow(since=since, until=None, is_custom=False, range_name=range_name)


def filter_by_window(records: Iterable[Record], window: TimeWindow) -> list[Record]:
    """Records inside ``window``, preserving input order."""
    return [r for r in records if window.contains(r.created_at)]


def covers_window(records: Sequence[Record], window: TimeWindow) -> bool:
    """Whether cached records reach back to the window start.

    An unbounded window is never covered; an empty cache covers nothing.
    """
    if not records or window.since is None:
        return False
    return min(r.created_at for r in records) <= window.since


__all__ = [
    "HOUR",
    "DAY",
    "PRESET_SPANS",
    "CUSTOM",
    "CustomRange",
    "TimeWindow",
    "resolve_window",
    "filter_by_window",
    "covers_window",
]
