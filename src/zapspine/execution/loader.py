"""Progressive loader: the effectful driver of the pagination state machine.

WHY
───
``pagination.py`` decides; this module acts. One ``ProgressiveLoader``
is the single logical worker for the active subject: it computes query
bounds, issues one fan-out per cycle under a hard deadline, merges the
validated records into the subject cache, applies the resulting
transition and schedules whatever the pure scheduler asks for next.

ARCHITECTURE
────────────
::

    set_subject / set_window
        │  apply_window(cache)          decide_auto_start
        ▼                                     │ CONTINUE(delay)
    load_more(automatic) ◀──── scheduled task ┘
        │  in-flight guard (drop, never queue)
        │  pagination_bounds + BatchController.next_batch_size
        ▼
    FanoutExecutor.query([filter], extra_urls, timeout)
        │  accept(record) validation → RecordCache.merge
        ▼
    apply_success / apply_failure ──▶ decide_after ──▶ schedule / idle

Cancellation: ``set_subject`` and ``cancel`` bump a generation counter,
cancel the scheduled continuation and the in-flight fetch task; a cycle
that finishes under an old generation is discarded.

A ``set_window`` during a fetch does not cancel it: the records are still
merged, but completion is only judged when the fetched bounds match the
current window. Otherwise the view is re-derived and the auto-start rule
of the new window decides what happens next.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

from zapspine.core.cache import RecordCache
from zapspine.core.errors import error_message
from zapspine.core.logging import LogContext, get_logger
from zapspine.core.models import QueryFilter, Record, Subject
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.core.windows import TimeWindow
from zapspine.execution.batching import BatchController
from zapspine.execution.fanout import FanoutExecutor
from zapspine.execution.pagination import (
    FetchOutcome,
    LoadingState,
    NextAction,
    NextStep,
    abort_fetch,
    apply_failure,
    apply_success,
    apply_superseded,
    apply_window,
    begin_fetch,
    decide_after,
    decide_auto_start,
    initial_state,
    pagination_bounds,
    reset_failures,
    same_bounds,
    should_attempt,
)
from zapspine.execution.pagination import restart_auto_load as _restart_auto_load
from zapspine.execution.pagination import toggle_auto_load as _toggle_auto_load

logger = get_logger(__name__)

ZAP_RECEIPT_KIND = 9735

FilterFactory = Callable[[Subject, int, int | None, int | None], QueryFilter]


def receipts_filter(subject: Subject, limit: int, since: int | None, until: int | None) -> QueryFilter:
    """Zap receipts addressed to ``subject``."""
    return QueryFilter.build(
        kinds=[ZAP_RECEIPT_KIND],
        tags={"p": [subject]},
        since=since,
        until=until,
        limit=limit,
    )


def _accept_all(record: Record) -> bool:
    return True


class ProgressiveLoader:
    """Drives pagination for one subject at a time.

    Example:
        loader = ProgressiveLoader(executor, registry.records, accept=is_valid_zap_receipt)
        await loader.set_subject(pubkey, resolve_window("7d"))
        await loader.wait_idle()
        loader.state.receipts
    """

    def __init__(
        self,
        executor: FanoutExecutor,
        cache: RecordCache,
        *,
        settings: ZapSpineSettings | None = None,
        filter_factory: FilterFactory = receipts_filter,
        accept: Callable[[Record], bool] = _accept_all,
        extra_urls: Iterable[str] = (),
    ) -> None:
        self.executor = executor
        self.cache = cache
        self.settings = settings or get_settings()
        self.filter_factory = filter_factory
        self.accept = accept
        self.extra_urls = list(extra_urls)
        self.batches = BatchController.from_settings(self.settings)

        self.subject: Subject | None = None
        self.window: TimeWindow | None = None
        self.state: LoadingState = initial_state()

        self._generation = 0
        self._fetch_task: asyncio.Task[FetchOutcome] | None = None
        self._scheduled: asyncio.Task[None] | None = None

    # ── activation ──────────────────────────────────────────────

    async def set_subject(self, subject: Subject, window: TimeWindow) -> LoadingState:
        """Switch subject: abort everything, reset loop state, keep the cache."""
        await self.cancel()
        self.subject = subject
        self.window = window
        self.state = apply_window(initial_state(), self.cache.get(subject), window)
        logger.info(
            "pagination.subject_set",
            subject=subject,
            range=window.range_name,
            cached=self.cache.size(subject),
        )
        self._schedule(decide_auto_start(self.state, self.cache.get(subject), window, self.settings))
        return self.state

    def set_window(self, window: TimeWindow) -> LoadingState:
        """Switch window for the current subject; pagination progress is kept."""
        self.window = window
        if self.subject is None:
            return self.state
        cached = self.cache.get(self.subject)
        self.state = apply_window(self.state, cached, window)
        logger.debug("pagination.window_set", subject=self.subject, range=window.range_name)
        if not self.state.is_loading:
            self._schedule(decide_auto_start(self.state, cached, window, self.settings))
        return self.state

    # ── fetching ────────────────────────────────────────────────

    async def load_more(self, automatic: bool = False) -> LoadingState:
        """Run one fetch cycle (dropped if one is already in flight)."""
        subject, window = self.subject, self.window
        if subject is None or window is None:
            return self.state
        if self._fetch_task is not None and not self._fetch_task.done():
            logger.debug("pagination.request_dropped", subject=subject, automatic=automatic)
            return self.state

        if not automatic:
            self._cancel_scheduled()
            self.state = reset_failures(self.state)
        if not should_attempt(self.state, automatic=automatic, settings=self.settings):
            return self.state

        generation = self._generation
        batch_index = self.state.current_batch
        self.state = begin_fetch(self.state)
        self._fetch_task = asyncio.ensure_future(self._fetch(subject, window, automatic))

        async with LogContext(subject=subject, batch=batch_index):
            outcome: FetchOutcome | None
            try:
                outcome = await self._fetch_task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if generation == self._generation or (current is not None and current.cancelling()):
                    if generation == self._generation:
                        self.state = abort_fetch(self.state)
                    raise
                return self.state
            except Exception as e:
                if generation != self._generation:
                    return self.state
                outcome = None
                self.state = apply_failure(
                    self.state, error_message(e), self.settings.max_consecutive_failures
                )
                logger.warning(
                    "pagination.batch_failed",
                    error=self.state.error,
                    consecutive_failures=self.state.consecutive_failures,
                    auto_load_enabled=self.state.auto_load_enabled,
                )
            else:
                if generation != self._generation:
                    return self.state
                cached = self.cache.merge(subject, outcome.records)
                current = self.window or window
                if not same_bounds(window, current):
                    self.state = apply_superseded(self.state, outcome, cached, current)
                    logger.info(
                        "pagination.window_superseded",
                        fetched_for=window.range_name,
                        current=current.range_name,
                        returned=outcome.returned,
                        total=self.state.total_fetched,
                    )
                    self._schedule(decide_auto_start(self.state, cached, current, self.settings))
                    return self.state
                self.state = apply_success(self.state, outcome, cached, current, self.settings)
                logger.info(
                    "pagination.batch_complete",
                    requested=outcome.requested,
                    returned=outcome.returned,
                    detected_limit=self.state.detected_limit,
                    total=self.state.total_fetched,
                    complete=self.state.is_complete,
                )

        step = decide_after(
            self.state,
            outcome,
            self.cache.get(subject),
            self.window or window,
            automatic=automatic,
            settings=self.settings,
        )
        self._schedule(step)
        return self.state

    async def _fetch(self, subject: Subject, window: TimeWindow, automatic: bool) -> FetchOutcome:
        since, until = pagination_bounds(window, self.cache.oldest_timestamp(subject))
        size = self.batches.next_batch_size(
            self.state.detected_limit,
            automatic=automatic,
            batch_index=self.state.current_batch,
        )
        flt = self.filter_factory(subject, size, since, until)
        logger.debug("pagination.fetch_started", limit=size, since=since, until=until)

        result = await self.executor.query([flt], self.extra_urls, timeout=self.settings.timeout_seconds)
        failure = result.failure()
        if failure is not None:
            raise failure.with_context(subject=subject)

        valid = [r for r in result.records if self.accept(r)]
        return FetchOutcome.from_records(valid, size)

    # ── scheduling ──────────────────────────────────────────────

    def _schedule(self, step: NextStep) -> None:
        if step.action is not NextAction.CONTINUE:
            if step.action is NextAction.STOP:
                self._cancel_scheduled()
            return
        self._cancel_scheduled()
        self._scheduled = asyncio.ensure_future(self._run_later(step.delay, self._generation))

    async def _run_later(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        if generation != self._generation:
            return
        await self.load_more(automatic=True)

    def _cancel_scheduled(self) -> None:
        task = self._scheduled
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._scheduled = None

    async def cancel(self) -> None:
        """Abort the in-flight fetch and any scheduled continuation."""
        self._generation += 1
        pending: list[asyncio.Task[Any]] = []
        for task in (self._scheduled, self._fetch_task):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                pending.append(task)
        self._scheduled = None
        self._fetch_task = None
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self.state = abort_fetch(self.state)

    async def wait_idle(self) -> LoadingState:
        """Wait until no fetch is running and no continuation is pending."""
        while True:
            pending = [
                t
                for t in (self._scheduled, self._fetch_task)
                if t is not None and not t.done() and t is not asyncio.current_task()
            ]
            if not pending:
                return self.state
            await asyncio.wait(pending)

    # ── auto-load controls ──────────────────────────────────────

    def restart_auto_load(self) -> LoadingState:
        """Re-enable auto-load, reset the breaker and start again if needed."""
        self.state = _restart_auto_load(self.state)
        if self.subject is not None and self.window is not None and not self.state.is_loading:
            if should_attempt(self.state, automatic=True, settings=self.settings):
                self._schedule(NextStep(NextAction.CONTINUE, self.settings.auto_load_delay_seconds))
        return self.state

    def toggle_auto_load(self) -> LoadingState:
        self.state = _toggle_auto_load(self.state)
        if not self.state.auto_load_enabled:
            self._cancel_scheduled()
        return self.state

    def loading_descriptor(self) -> dict[str, Any]:
        return self.state.to_descriptor()


__all__ = [
    "ZAP_RECEIPT_KIND",
    "FilterFactory",
    "receipts_filter",
    "ProgressiveLoader",
]
