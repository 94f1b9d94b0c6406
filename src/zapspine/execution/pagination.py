"""Progressive pagination: tagged loading state and pure transitions.

STATE MACHINE
─────────────
::

    IDLE ──begin_fetch──▶ LOADING ──apply_success──▶ IDLE | COMPLETE
      ▲                      │
      │                      └──apply_failure──▶ FAILED (idle after failure)
      │                                              │
      └────────restart_auto_load / manual load───────┘

``LoadingState`` is immutable. The functions in this module are the only
way to derive a new state, and the scheduler decisions (``decide_next``,
``decide_auto_start``, ``decide_after``) are pure as well, so every rule
below can be tested without timers or sources. ``loader.py`` owns the
effects.

PAGINATION RULES
────────────────
- Walk strictly backward: ``until = oldest_cached - 1``.
- Progress is keyed by subject and the cache's oldest timestamp, never
  by the displayed window; switching windows keeps ``current_batch``.
- A page fetched for a window that was replaced mid-flight counts as
  progress only (``apply_superseded``).
- Complete when a page is short (source exhausted), when the oldest
  returned record is within ``boundary_tolerance_seconds`` of ``since``
  (preset windows), or when an empty page comes back for a bounded window.
- Circuit breaker: ``max_consecutive_failures`` disables auto-load;
  ``max_consecutive_zero_results`` stops automatic attempts.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from zapspine.core.models import Record, sort_newest_first
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.core.windows import TimeWindow, covers_window, filter_by_window
from zapspine.execution.batching import BatchController


class LoadPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class LoadingState:
    """Progress of the pagination loop for the active subject."""

    phase: LoadPhase = LoadPhase.IDLE
    receipts: tuple[Record, ...] = ()
    current_batch: int = 0
    total_fetched: int = 0
    detected_limit: int | None = None
    consecutive_failures: int = 0
    consecutive_zero_results: int = 0
    auto_load_enabled: bool = True
    error: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.phase is LoadPhase.LOADING

    @property
    def is_complete(self) -> bool:
        return self.phase is LoadPhase.COMPLETE

    @property
    def can_load_more(self) -> bool:
        return self.phase in (LoadPhase.IDLE, LoadPhase.FAILED)

    def to_descriptor(self) -> dict[str, Any]:
        """Loading summary exposed to callers alongside analytics."""
        return {
            "is_loading": self.is_loading,
            "is_complete": self.is_complete,
            "can_load_more": self.can_load_more,
            "error": self.error,
            "total_fetched": self.total_fetched,
            "current_batch": self.current_batch,
            "detected_limit": self.detected_limit,
            "auto_load_enabled": self.auto_load_enabled,
            "consecutive_failures": self.consecutive_failures,
        }


@dataclass(frozen=True)
class FetchOutcome:
    """Validated records from one fetch cycle and the size that was requested."""

    records: tuple[Record, ...]
    requested: int

    @classmethod
    def from_records(cls, records: Sequence[Record], requested: int) -> FetchOutcome:
        return cls(records=tuple(records), requested=requested)

    @property
    def returned(self) -> int:
        return len(self.records)

    @property
    def oldest_returned(self) -> int | None:
        if not self.records:
            return None
        return min(r.created_at for r in self.records)


class NextAction(str, Enum):
    CONTINUE = "continue"
    WAIT = "wait"
    STOP = "stop"


@dataclass(frozen=True)
class NextStep:
    action: NextAction
    delay: float = 0.0

    @classmethod
    def wait(cls) -> NextStep:
        return cls(NextAction.WAIT)

    @classmethod
    def stop(cls) -> NextStep:
        return cls(NextAction.STOP)


def _settings(settings: ZapSpineSettings | None) -> ZapSpineSettings:
    return settings if settings is not None else get_settings()


def _window_view(cached: Sequence[Record], window: TimeWindow) -> tuple[Record, ...]:
    return tuple(filter_by_window(sort_newest_first(cached), window))


# =============================================================================
# TRANSITIONS
# =============================================================================


def initial_state() -> LoadingState:
    return LoadingState()


def apply_window(state: LoadingState, cached: Sequence[Record], window: TimeWindow) -> LoadingState:
    """Re-derive the view for ``window`` from the cache.

    Pagination counters are left alone. The state is complete only when
    the cache already reaches back to ``since``.
    """
    receipts = _window_view(cached, window)
    if state.is_loading:
        phase = LoadPhase.LOADING
    elif covers_window(cached, window):
        phase = LoadPhase.COMPLETE
    else:
        phase = LoadPhase.IDLE
    return replace(
        state,
        phase=phase,
        receipts=receipts,
        total_fetched=len(receipts),
        error=None,
    )


def begin_fetch(state: LoadingState) -> LoadingState:
    return replace(state, phase=LoadPhase.LOADING, error=None)


def abort_fetch(state: LoadingState) -> LoadingState:
    """Leave LOADING without recording an outcome (cancelled cycle)."""
    if not state.is_loading:
        return state
    return replace(state, phase=LoadPhase.IDLE)


def apply_success(
    state: LoadingState,
    outcome: FetchOutcome,
    cached: Sequence[Record],
    window: TimeWindow,
    settings: ZapSpineSettings | None = None,
) -> LoadingState:
    """Fold one successful fetch into the state.

    ``cached`` is the subject's cache after merging ``outcome.records``.
    """
    settings = _settings(settings)
    controller = BatchController.from_settings(settings)

    receipts = _window_view(cached, window)
    returned = outcome.returned
    detected = controller.detect_limit(returned, outcome.requested, state.detected_limit)
    expected = controller.expected_batch_size(detected, outcome.requested)

    if returned == 0:
        complete = window.since is not None
    else:
        complete = returned < expected
        if not complete and not window.is_custom and window.since is not None:
            oldest = outcome.oldest_returned
            complete = oldest is not None and oldest <= window.since + settings.boundary_tolerance_seconds

    return replace(
        state,
        phase=LoadPhase.COMPLETE if complete else LoadPhase.IDLE,
        receipts=receipts,
        current_batch=state.current_batch + 1,
        total_fetched=len(receipts),
        detected_limit=detected,
        consecutive_failures=0,
        consecutive_zero_results=state.consecutive_zero_results + 1 if returned == 0 else 0,
        error=None,
    )


def same_bounds(a: TimeWindow, b: TimeWindow) -> bool:
    """Whether a fetch bounded by ``a`` can be judged against ``b``."""
    return (a.since, a.until, a.is_custom) == (b.since, b.until, b.is_custom)


def apply_superseded(
    state: LoadingState,
    outcome: FetchOutcome,
    cached: Sequence[Record],
    window: TimeWindow,
) -> LoadingState:
    """Fold a fetch whose window was replaced while it was in flight.

    The records are already merged into ``cached`` and the batch counts as
    progress, but the page was bounded by the old window: neither a limit
    nor completion can be read from it. The view is re-derived for the
    current ``window`` instead.
    """
    progressed = replace(
        state,
        phase=LoadPhase.IDLE,
        current_batch=state.current_batch + 1,
        consecutive_failures=0,
        consecutive_zero_results=0 if outcome.returned else state.consecutive_zero_results,
    )
    return apply_window(progressed, cached, window)


def apply_failure(state: LoadingState, error: str, max_failures: int = 3) -> LoadingState:
    """Record a failed cycle; trip the breaker at ``max_failures``."""
    failures = state.consecutive_failures + 1
    return replace(
        state,
        phase=LoadPhase.FAILED,
        consecutive_failures=failures,
        auto_load_enabled=state.auto_load_enabled and failures < max_failures,
        error=error,
    )


def reset_failures(state: LoadingState) -> LoadingState:
    """Manual retry: forget previous failures (auto-load stays as it is)."""
    return replace(state, consecutive_failures=0)


def restart_auto_load(state: LoadingState) -> LoadingState:
    phase = LoadPhase.IDLE if state.phase is LoadPhase.FAILED else state.phase
    return replace(
        state,
        phase=phase,
        auto_load_enabled=True,
        consecutive_failures=0,
        consecutive_zero_results=0,
        error=None,
    )


def toggle_auto_load(state: LoadingState) -> LoadingState:
    return replace(state, auto_load_enabled=not state.auto_load_enabled)


# =============================================================================
# QUERY BOUNDS
# =============================================================================


def pagination_bounds(window: TimeWindow, oldest_cached: int | None) -> tuple[int | None, int | None]:
    """``(since, until)`` for the next fetch.

    Examples:
        >>> pagination_bounds(TimeWindow(since=100), 500)
        (100, 499)
        >>> pagination_bounds(TimeWindow(since=100, until=300, is_custom=True, range_name="custom"), 500)
        (100, 300)
    """
    until = window.until
    if oldest_cached is not None:
        paginated = oldest_cached - 1
        if window.is_custom and window.until is not None:
            until = min(paginated, window.until)
        else:
            until = paginated
    return window.since, until


# =============================================================================
# SCHEDULER DECISIONS
# =============================================================================


def should_attempt(
    state: LoadingState,
    *,
    automatic: bool,
    settings: ZapSpineSettings | None = None,
) -> bool:
    """Whether a fetch may start from ``state``."""
    if state.is_complete or state.is_loading:
        return False
    if automatic:
        settings = _settings(settings)
        if not state.auto_load_enabled:
            return False
        if state.consecutive_failures >= settings.max_consecutive_failures:
            return False
        if state.consecutive_zero_results >= settings.max_consecutive_zero_results:
            return False
    return True


def decide_next(
    state: LoadingState,
    outcome: FetchOutcome | None,
    *,
    automatic: bool,
    settings: ZapSpineSettings | None = None,
) -> NextStep:
    """What to do right after a fetch cycle settled.

    ``outcome`` is None after a failed cycle.
    """
    settings = _settings(settings)
    if (
        state.is_complete
        or not state.auto_load_enabled
        or state.consecutive_zero_results >= settings.max_consecutive_zero_results
    ):
        return NextStep.stop()

    if automatic and outcome is not None and outcome.returned > 0:
        substantial = (
            outcome.returned >= settings.continue_fraction * outcome.requested
            or outcome.returned >= settings.continue_min_records
        )
        if substantial:
            return NextStep(NextAction.CONTINUE, settings.batch_delay_ms / 1000)

    return NextStep.wait()


def decide_auto_start(
    state: LoadingState,
    cached: Sequence[Record],
    window: TimeWindow,
    settings: ZapSpineSettings | None = None,
) -> NextStep:
    """Whether activating ``window`` should kick off automatic loading."""
    settings = _settings(settings)
    if not should_attempt(state, automatic=True, settings=settings):
        return NextStep.wait()

    has_data = bool(_window_view(cached, window))
    if window.since is None:
        needs_more = True
    elif not has_data:
        needs_more = not covers_window(cached, window)
    else:
        oldest = min(r.created_at for r in cached)
        needs_more = oldest > window.since + settings.extended_boundary_tolerance_seconds

    if not needs_more:
        return NextStep.wait()

    if window.is_custom:
        delay_ms = settings.custom_range_delay_ms
    else:
        delay_ms = settings.auto_load_delay_ms * (2 if has_data else 1)
    return NextStep(NextAction.CONTINUE, delay_ms / 1000)


def decide_after(
    state: LoadingState,
    outcome: FetchOutcome | None,
    cached: Sequence[Record],
    window: TimeWindow,
    *,
    automatic: bool,
    settings: ZapSpineSettings | None = None,
) -> NextStep:
    """Single scheduling decision after a transition.

    A substantial automatic batch continues after ``batch_delay_ms``.
    Otherwise the window's auto-start rule gets another look, which is
    what retries failures until the breaker trips and retries empty pages
    of an unbounded window until the zero-result cap.
    """
    step = decide_next(state, outcome, automatic=automatic, settings=settings)
    if step.action is NextAction.WAIT:
        return decide_auto_start(state, cached, window, settings)
    return step


__all__ = [
    "LoadPhase",
    "LoadingState",
    "FetchOutcome",
    "NextAction",
    "NextStep",
    "initial_state",
    "apply_window",
    "begin_fetch",
    "abort_fetch",
    "apply_success",
    "same_bounds",
    "apply_superseded",
    "apply_failure",
    "reset_failures",
    "restart_auto_load",
    "toggle_auto_load",
    "pagination_bounds",
    "should_attempt",
    "decide_next",
    "decide_auto_start",
    "decide_after",
]
