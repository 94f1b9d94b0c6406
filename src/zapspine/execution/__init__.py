"""zap-spine execution — fan-out, adaptive batching and progressive pagination.

ARCHITECTURE
────────────
::

    ProgressiveLoader (loader.py)       one logical worker per subject
      ├── pagination.py   LoadingState + pure transitions and decisions
      ├── batching.py     BatchController (detected source limits)
      └── fanout.py       FanoutExecutor (parallel sources, shared deadline)

    ChunkedLookup (lookups.py)          content / profile enrichment

MODULE MAP
──────────
  1. fanout.py      ─ FanoutExecutor, FanoutResult, merge_records
  2. batching.py    ─ BatchLimits, BatchController
  3. pagination.py  ─ LoadPhase, LoadingState, transitions, NextStep
  4. loader.py      ─ ProgressiveLoader, receipts_filter
  5. lookups.py     ─ ChunkedLookup, content_lookup, profile_lookup
"""

from zapspine.execution.batching import BatchController, BatchLimits
from zapspine.execution.fanout import FanoutExecutor, FanoutResult, SourceOutcome, merge_records
from zapspine.execution.loader import ProgressiveLoader, receipts_filter
from zapspine.execution.lookups import ChunkedLookup, content_lookup, profile_lookup
from zapspine.execution.pagination import (
    FetchOutcome,
    LoadingState,
    LoadPhase,
    NextAction,
    NextStep,
    decide_after,
    decide_auto_start,
    decide_next,
    pagination_bounds,
    should_attempt,
)

__all__ = [
    # Fan-out
    "FanoutExecutor",
    "FanoutResult",
    "SourceOutcome",
    "merge_records",
    # Batching
    "BatchController",
    "BatchLimits",
    # Pagination
    "LoadPhase",
    "LoadingState",
    "FetchOutcome",
    "NextAction",
    "NextStep",
    "pagination_bounds",
    "should_attempt",
    "decide_next",
    "decide_auto_start",
    "decide_after",
    # Driver
    "ProgressiveLoader",
    "receipts_filter",
    # Lookups
    "ChunkedLookup",
    "content_lookup",
    "profile_lookup",
]
