"""Pure aggregations over parsed zaps.

Every function takes an already deduplicated, window-filtered list of
``ParsedZap`` and returns plain dataclasses; nothing here touches a
source or a cache.

Bucket widths for earnings over time follow the window span::

    span <= 2 days    → hour
    span <= 31 days   → day
    span <= 180 days  → week   (weeks start on Monday)
    otherwise         → month

Loyalty classes per zapper::

    new        exactly one zap
    regular    >= 5 zaps, or >= 2 zaps totalling >= 10 000 sats
    returning  everyone else
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from zapspine.analytics.zaps import ParsedZap
from zapspine.core.windows import DAY, TimeWindow

HOUR_BUCKET = "hour"
DAY_BUCKET = "day"
WEEK_BUCKET = "week"
MONTH_BUCKET = "month"

REGULAR_MIN_ZAPS = 5
REGULAR_MIN_REPEAT_ZAPS = 2
REGULAR_MIN_SATS = 10_000

PREVIEW_LENGTH = 100

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

KIND_NAMES: dict[int, str] = {
    0: "Profile",
    1: "Text Note",
    6: "Repost",
    7: "Reaction",
    20: "Picture",
    1063: "File",
    9802: "Highlight",
    30023: "Long-form Article",
    30311: "Live Event",
    30402: "Classified Listing",
    31922: "Calendar Event (date)",
    31923: "Calendar Event (time)",
    34235: "Video",
}

PROFILE_ZAP_NAME = "Profile Zap"


def kind_name(kind: int | None) -> str:
    if kind is None:
        return PROFILE_ZAP_NAME
    return KIND_NAMES.get(kind, f"Kind {kind}")


def _preview(text: str | None) -> str | None:
    if text is None:
        return None
    text = " ".join(text.split())
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[: PREVIEW_LENGTH - 3] + "..."


def _tz(tz: str | ZoneInfo) -> ZoneInfo:
    return tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class PeriodTotal:
    label: str
    start: int
    total_sats: int = 0
    zap_count: int = 0


@dataclass(frozen=True)
class ContentTotal:
    event_id: str
    kind: int | None
    author: str | None
    preview: str | None
    total_sats: int
    zap_count: int


@dataclass(frozen=True)
class KindTotal:
    kind: int | None
    kind_name: str
    total_sats: int
    zap_count: int
    percentage: float


@dataclass(frozen=True)
class ZapperTotal:
    pubkey: str
    name: str | None
    total_sats: int
    zap_count: int
    last_zap_at: int


@dataclass(frozen=True)
class HourTotal:
    hour: int
    total_sats: int = 0
    zap_count: int = 0


@dataclass(frozen=True)
class DayOfWeekTotal:
    day: int
    day_name: str
    total_sats: int = 0
    zap_count: int = 0


@dataclass(frozen=True)
class LoyalZapper:
    pubkey: str
    name: str | None
    category: str
    zap_count: int
    total_sats: int
    first_zap_at: int
    last_zap_at: int


@dataclass(frozen=True)
class LoyaltyStats:
    new_zappers: int = 0
    returning_zappers: int = 0
    regular_supporters: int = 0
    average_lifetime_value: float = 0.0
    top_loyal_zappers: list[LoyalZapper] = field(default_factory=list)


@dataclass(frozen=True)
class ContentPerformance:
    event_id: str
    kind: int | None
    preview: str | None
    total_sats: int
    zap_count: int
    unique_zappers: int
    average_zap: float
    first_zap_at: int
    seconds_to_first_zap: int | None
    hashtags: list[str]


@dataclass(frozen=True)
class HashtagTotal:
    hashtag: str
    total_sats: int
    zap_count: int
    content_count: int
    average_zap: float


# =============================================================================
# EARNINGS OVER TIME
# =============================================================================


def bucket_width(window: TimeWindow, zaps: Iterable[ParsedZap], now: int) -> str:
    """Bucket width for ``window``; unbounded windows use the data's own span."""
    span = window.span_seconds(now)
    if span is None:
        timestamps = [z.created_at for z in zaps]
        span = now - min(timestamps) if timestamps else 0
    if span <= 2 * DAY:
        return HOUR_BUCKET
    if span <= 31 * DAY:
        return DAY_BUCKET
    if span <= 180 * DAY:
        return WEEK_BUCKET
    return MONTH_BUCKET


def _bucket_start(moment: datetime, width: str) -> datetime:
    if width == HOUR_BUCKET:
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if width == DAY_BUCKET:
        return day
    if width == WEEK_BUCKET:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def _next_bucket(start: datetime, width: str) -> datetime:
    if width == HOUR_BUCKET:
        return start + timedelta(hours=1)
    if width == DAY_BUCKET:
        return start + timedelta(days=1)
    if width == WEEK_BUCKET:
        return start + timedelta(weeks=1)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def _label(start: datetime, width: str) -> str:
    if width == HOUR_BUCKET:
        return start.strftime("%Y-%m-%d %H:00")
    if width == DAY_BUCKET:
        return start.strftime("%Y-%m-%d")
    if width == WEEK_BUCKET:
        return start.strftime("Week of %Y-%m-%d")
    return start.strftime("%Y-%m")


def group_by_period(
    zaps: list[ParsedZap],
    window: TimeWindow,
    now: int,
    tz: str | ZoneInfo = "UTC",
) -> list[PeriodTotal]:
    """Earnings per time bucket, oldest first.

    When the window has a start, every bucket from the start to the
    window end is present (empty ones with zero totals).
    """
    zone = _tz(tz)
    width = bucket_width(window, zaps, now)
    totals: dict[datetime, list[int]] = {}

    if window.since is not None:
        upper = window.until if (window.is_custom and window.until is not None) else now
        cursor = _bucket_start(datetime.fromtimestamp(window.since, zone), width)
        last = _bucket_start(datetime.fromtimestamp(max(upper, window.since), zone), width)
        while cursor <= last:
            totals[cursor] = [0, 0]
            cursor = _next_bucket(cursor, width)

    for zap in zaps:
        start = _bucket_start(datetime.fromtimestamp(zap.created_at, zone), width)
        entry = totals.setdefault(start, [0, 0])
        entry[0] += zap.amount
        entry[1] += 1

    return [
        PeriodTotal(label=_label(start, width), start=int(start.timestamp()), total_sats=s, zap_count=c)
        for start, (s, c) in sorted(totals.items())
    ]


# =============================================================================
# CONTENT, KIND, ZAPPERS
# =============================================================================


def group_by_content(zaps: list[ParsedZap], top_n: int | None = 5) -> list[ContentTotal]:
    """Top zapped content by total sats."""
    grouped: dict[str, list[ParsedZap]] = defaultdict(list)
    for zap in zaps:
        if zap.zapped_event is not None:
            grouped[zap.zapped_event.id].append(zap)

    rows = []
    for event_id, items in grouped.items():
        event = next((z.zapped_event for z in items if z.zapped_event.content is not None), items[0].zapped_event)
        rows.append(
            ContentTotal(
                event_id=event_id,
                kind=event.kind,
                author=event.author,
                preview=_preview(event.content),
                total_sats=sum(z.amount for z in items),
                zap_count=len(items),
            )
        )
    rows.sort(key=lambda r: (-r.total_sats, -r.zap_count, r.event_id))
    return rows if top_n is None else rows[:top_n]


def group_by_kind(zaps: list[ParsedZap]) -> list[KindTotal]:
    """Earnings per zapped-content kind; profile zaps have ``kind=None``."""
    totals: dict[int | None, list[int]] = {}
    for zap in zaps:
        kind = zap.zapped_event.kind if zap.zapped_event is not None else None
        entry = totals.setdefault(kind, [0, 0])
        entry[0] += zap.amount
        entry[1] += 1

    grand_total = sum(s for s, _ in totals.values())
    rows = [
        KindTotal(
            kind=kind,
            kind_name=kind_name(kind),
            total_sats=s,
            zap_count=c,
            percentage=round(100 * s / grand_total, 2) if grand_total else 0.0,
        )
        for kind, (s, c) in totals.items()
    ]
    rows.sort(key=lambda r: (-r.total_sats, -r.zap_count, r.kind_name))
    return rows


def top_zappers(zaps: list[ParsedZap], top_n: int | None = 5) -> list[ZapperTotal]:
    grouped: dict[str, list[ParsedZap]] = defaultdict(list)
    for zap in zaps:
        grouped[zap.zapper.pubkey].append(zap)

    rows = [
        ZapperTotal(
            pubkey=pubkey,
            name=next((z.zapper.name for z in items if z.zapper.name), None),
            total_sats=sum(z.amount for z in items),
            zap_count=len(items),
            last_zap_at=max(z.created_at for z in items),
        )
        for pubkey, items in grouped.items()
    ]
    rows.sort(key=lambda r: (-r.total_sats, -r.zap_count, r.pubkey))
    return rows if top_n is None else rows[:top_n]


# =============================================================================
# TEMPORAL PATTERNS
# =============================================================================


def group_by_hour(zaps: list[ParsedZap], tz: str | ZoneInfo = "UTC") -> list[HourTotal]:
    """24 rows, hour 0 first."""
    zone = _tz(tz)
    sats = [0] * 24
    counts = [0] * 24
    for zap in zaps:
        hour = datetime.fromtimestamp(zap.created_at, zone).hour
        sats[hour] += zap.amount
        counts[hour] += 1
    return [HourTotal(hour=h, total_sats=sats[h], zap_count=counts[h]) for h in range(24)]


def group_by_day_of_week(zaps: list[ParsedZap], tz: str | ZoneInfo = "UTC") -> list[DayOfWeekTotal]:
    """7 rows, Monday first."""
    zone = _tz(tz)
    sats = [0] * 7
    counts = [0] * 7
    for zap in zaps:
        day = datetime.fromtimestamp(zap.created_at, zone).weekday()
        sats[day] += zap.amount
        counts[day] += 1
    return [
        DayOfWeekTotal(day=d, day_name=DAY_NAMES[d], total_sats=sats[d], zap_count=counts[d])
        for d in range(7)
    ]


# =============================================================================
# LOYALTY
# =============================================================================


def loyalty_category(zap_count: int, total_sats: int) -> str:
    if zap_count >= REGULAR_MIN_ZAPS or (
        zap_count >= REGULAR_MIN_REPEAT_ZAPS and total_sats >= REGULAR_MIN_SATS
    ):
        return "regular"
    if zap_count == 1:
        return "new"
    return "returning"


def analyze_loyalty(zaps: list[ParsedZap], top_n: int = 5) -> LoyaltyStats:
    grouped: dict[str, list[ParsedZap]] = defaultdict(list)
    for zap in zaps:
        grouped[zap.zapper.pubkey].append(zap)
    if not grouped:
        return LoyaltyStats()

    zappers = []
    for pubkey, items in grouped.items():
        total = sum(z.amount for z in items)
        zappers.append(
            LoyalZapper(
                pubkey=pubkey,
                name=next((z.zapper.name for z in items if z.zapper.name), None),
                category=loyalty_category(len(items), total),
                zap_count=len(items),
                total_sats=total,
                first_zap_at=min(z.created_at for z in items),
                last_zap_at=max(z.created_at for z in items),
            )
        )

    by_category: dict[str, int] = defaultdict(int)
    for zapper in zappers:
        by_category[zapper.category] += 1

    loyal = [z for z in zappers if z.category != "new"]
    loyal.sort(key=lambda z: (-z.zap_count, -z.total_sats, z.pubkey))

    return LoyaltyStats(
        new_zappers=by_category["new"],
        returning_zappers=by_category["returning"],
        regular_supporters=by_category["regular"],
        average_lifetime_value=round(sum(z.total_sats for z in zappers) / len(zappers), 2),
        top_loyal_zappers=loyal[:top_n],
    )


# =============================================================================
# CONTENT PERFORMANCE
# =============================================================================


def analyze_content_performance(zaps: list[ParsedZap], top_n: int | None = 10) -> list[ContentPerformance]:
    grouped: dict[str, list[ParsedZap]] = defaultdict(list)
    for zap in zaps:
        if zap.zapped_event is not None:
            grouped[zap.zapped_event.id].append(zap)

    rows = []
    for event_id, items in grouped.items():
        event = next((z.zapped_event for z in items if z.zapped_event.created_at is not None), items[0].zapped_event)
        total = sum(z.amount for z in items)
        first_zap = min(z.created_at for z in items)
        rows.append(
            ContentPerformance(
                event_id=event_id,
                kind=event.kind,
                preview=_preview(event.content),
                total_sats=total,
                zap_count=len(items),
                unique_zappers=len({z.zapper.pubkey for z in items}),
                average_zap=round(total / len(items), 2),
                first_zap_at=first_zap,
                seconds_to_first_zap=max(first_zap - event.created_at, 0) if event.created_at is not None else None,
                hashtags=event.hashtags,
            )
        )
    rows.sort(key=lambda r: (-r.total_sats, -r.zap_count, r.event_id))
    return rows if top_n is None else rows[:top_n]


def analyze_hashtag_performance(zaps: list[ParsedZap], top_n: int | None = 10) -> list[HashtagTotal]:
    """Earnings per hashtag of the zapped content (enriched zaps only)."""
    sats: dict[str, int] = defaultdict(int)
    counts: dict[str, int] = defaultdict(int)
    content: dict[str, set[str]] = defaultdict(set)
    for zap in zaps:
        event = zap.zapped_event
        if event is None:
            continue
        for tag in event.hashtags:
            sats[tag] += zap.amount
            counts[tag] += 1
            content[tag].add(event.id)

    rows = [
        HashtagTotal(
            hashtag=tag,
            total_sats=sats[tag],
            zap_count=counts[tag],
            content_count=len(content[tag]),
            average_zap=round(sats[tag] / counts[tag], 2),
        )
        for tag in sats
    ]
    rows.sort(key=lambda r: (-r.total_sats, -r.zap_count, r.hashtag))
    return rows if top_n is None else rows[:top_n]


__all__ = [
    "HOUR_BUCKET",
    "DAY_BUCKET",
    "WEEK_BUCKET",
    "MONTH_BUCKET",
    "KIND_NAMES",
    "DAY_NAMES",
    "kind_name",
    "PeriodTotal",
    "ContentTotal",
    "KindTotal",
    "ZapperTotal",
    "HourTotal",
    "DayOfWeekTotal",
    "LoyalZapper",
    "LoyaltyStats",
    "ContentPerformance",
    "HashtagTotal",
    "bucket_width",
    "group_by_period",
    "group_by_content",
    "group_by_kind",
    "top_zappers",
    "group_by_hour",
    "group_by_day_of_week",
    "loyalty_category",
    "analyze_loyalty",
    "analyze_content_performance",
    "analyze_hashtag_performance",
]
