"""zap-spine delivery — scheduled publication of pre-signed events.

MODULE MAP
──────────
  1. models.py      ─ ScheduledPost, ScheduledPostStats, time_remaining
  2. repository.py  ─ ScheduledPostRepository (sqlite / Connection protocol)
  3. publisher.py   ─ Publisher protocol, to_websocket_url, DryRunPublisher
  4. worker.py      ─ DeliveryWorker.run_once → DeliveryRunResult
"""

from zapspine.delivery.models import (
    PostStatus,
    ScheduledPost,
    ScheduledPostCreate,
    ScheduledPostStats,
    time_remaining,
)
from zapspine.delivery.publisher import DryRunPublisher, Publisher, to_websocket_url
from zapspine.delivery.repository import ScheduledPostRepository
from zapspine.delivery.worker import DeliveryRunResult, DeliveryWorker, PostResult

__all__ = [
    "PostStatus",
    "ScheduledPost",
    "ScheduledPostCreate",
    "ScheduledPostStats",
    "time_remaining",
    "Publisher",
    "DryRunPublisher",
    "to_websocket_url",
    "ScheduledPostRepository",
    "DeliveryWorker",
    "DeliveryRunResult",
    "PostResult",
]
