"""zap-spine analytics — receipt parsing, aggregations and reports.

MODULE MAP
──────────
  1. zaps.py          ─ is_valid_zap_receipt, parse_zap_receipt, enrich_zap
  2. aggregations.py  ─ pure group-by / loyalty / performance functions
  3. report.py        ─ AnalyticsReport, build_report, empty_report
  4. service.py       ─ ZapAnalyticsService (loader + lookups + report)
"""

from zapspine.analytics.report import AnalyticsReport, build_report, empty_report
from zapspine.analytics.service import ZapAnalyticsService
from zapspine.analytics.zaps import (
    ParsedZap,
    ZappedEvent,
    Zapper,
    is_valid_zap_receipt,
    parse_bolt11_amount,
    parse_zap_receipt,
)

__all__ = [
    "AnalyticsReport",
    "build_report",
    "empty_report",
    "ZapAnalyticsService",
    "ParsedZap",
    "ZappedEvent",
    "Zapper",
    "is_valid_zap_receipt",
    "parse_bolt11_amount",
    "parse_zap_receipt",
]
