"""Analytics report assembly."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any
from zoneinfo import ZoneInfo

from zapspine.analytics.aggregations import (
    ContentPerformance,
    ContentTotal,
    DayOfWeekTotal,
    HashtagTotal,
    HourTotal,
    KindTotal,
    LoyaltyStats,
    PeriodTotal,
    ZapperTotal,
    analyze_content_performance,
    analyze_hashtag_performance,
    analyze_loyalty,
    group_by_content,
    group_by_day_of_week,
    group_by_hour,
    group_by_kind,
    group_by_period,
    top_zappers,
)
from zapspine.analytics.zaps import ParsedZap
from zapspine.core.windows import TimeWindow


@dataclass(frozen=True)
class TemporalPatterns:
    by_hour: list[HourTotal] = field(default_factory=list)
    by_day_of_week: list[DayOfWeekTotal] = field(default_factory=list)


@dataclass(frozen=True)
class AnalyticsReport:
    total_sats: int
    total_zaps: int
    unique_zappers: int
    period: str
    earnings_by_period: list[PeriodTotal]
    top_content: list[ContentTotal]
    earnings_by_kind: list[KindTotal]
    top_zappers: list[ZapperTotal]
    temporal_patterns: TemporalPatterns
    loyalty: LoyaltyStats
    content_performance: list[ContentPerformance]
    hashtag_performance: list[HashtagTotal]
    zaps: list[ParsedZap]
    loading: dict[str, Any]

    def to_dict(self, include_zaps: bool = True) -> dict[str, Any]:
        """JSON-ready representation."""
        result: dict[str, Any] = {
            "total_sats": self.total_sats,
            "total_zaps": self.total_zaps,
            "unique_zappers": self.unique_zappers,
            "period": self.period,
            "earnings_by_period": [asdict(r) for r in self.earnings_by_period],
            "top_content": [asdict(r) for r in self.top_content],
            "earnings_by_kind": [asdict(r) for r in self.earnings_by_kind],
            "top_zappers": [asdict(r) for r in self.top_zappers],
            "temporal_patterns": asdict(self.temporal_patterns),
            "loyalty": asdict(self.loyalty),
            "content_performance": [asdict(r) for r in self.content_performance],
            "hashtag_performance": [asdict(r) for r in self.hashtag_performance],
            "loading": dict(self.loading),
        }
        if include_zaps:
            result["zaps"] = [z.to_dict() for z in self.zaps]
        return result


def build_report(
    zaps: list[ParsedZap],
    window: TimeWindow,
    loading: dict[str, Any],
    now: int,
    tz: str | ZoneInfo = "UTC",
) -> AnalyticsReport:
    """Run every aggregation over ``zaps``."""
    return AnalyticsReport(
        total_sats=sum(z.amount for z in zaps),
        total_zaps=len(zaps),
        unique_zappers=len({z.zapper.pubkey for z in zaps}),
        period=window.range_name,
        earnings_by_period=group_by_period(zaps, window, now, tz),
        top_content=group_by_content(zaps, top_n=5),
        earnings_by_kind=group_by_kind(zaps),
        top_zappers=top_zappers(zaps, top_n=5),
        temporal_patterns=TemporalPatterns(
            by_hour=group_by_hour(zaps, tz),
            by_day_of_week=group_by_day_of_week(zaps, tz),
        ),
        loyalty=analyze_loyalty(zaps),
        content_performance=analyze_content_performance(zaps, top_n=10),
        hashtag_performance=analyze_hashtag_performance(zaps),
        zaps=list(zaps),
        loading=dict(loading),
    )


def empty_report(range_name: str, loading: dict[str, Any] | None = None) -> AnalyticsReport:
    """Zero-valued report, used when no query may be issued."""
    descriptor: dict[str, Any] = {
        "is_loading": False,
        "is_complete": True,
        "can_load_more": False,
        "error": None,
        "total_fetched": 0,
        "current_batch": 0,
        "detected_limit": None,
        "auto_load_enabled": True,
        "consecutive_failures": 0,
    }
    descriptor.update(loading or {})
    return AnalyticsReport(
        total_sats=0,
        total_zaps=0,
        unique_zappers=0,
        period=range_name,
        earnings_by_period=[],
        top_content=[],
        earnings_by_kind=[],
        top_zappers=[],
        temporal_patterns=TemporalPatterns(),
        loyalty=LoyaltyStats(),
        content_performance=[],
        hashtag_performance=[],
        zaps=[],
        loading=descriptor,
    )


__all__ = ["TemporalPatterns", "AnalyticsReport", "build_report", "empty_report"]
