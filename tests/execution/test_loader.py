"""Tests for zapspine.execution.loader (pagination loop with fake sources)."""

import asyncio

import pytest

from tests._support.fakes import (
    NOW,
    SUBJECT,
    FailingSource,
    GatedSource,
    SlowSource,
    StaticSource,
    make_receipt,
)
from zapspine.analytics.zaps import is_valid_zap_receipt
from zapspine.core.models import Record
from zapspine.core.windows import DAY, resolve_window
from zapspine.execution.fanout import FanoutExecutor
from zapspine.execution.loader import ZAP_RECEIPT_KIND, ProgressiveLoader, receipts_filter
from zapspine.execution.pagination import LoadPhase
from zapspine.framework.sources import SourceRegistry

WEEK = resolve_window("7d", now=NOW)
MONTH = resolve_window("30d", now=NOW)
ALL_TIME = resolve_window("all", now=NOW)


def _loader(primary, settings, registry, **kwargs) -> ProgressiveLoader:
    connector = kwargs.pop("connector", None)
    return ProgressiveLoader(FanoutExecutor(primary, connector), registry.records, settings=settings, **kwargs)


def test_receipts_filter():
    flt = receipts_filter(SUBJECT, 500, 10, 20)
    assert flt.to_dict() == {
        "kinds": [ZAP_RECEIPT_KIND],
        "#p": [SUBJECT],
        "since": 10,
        "until": 20,
        "limit": 500,
    }


@pytest.mark.asyncio
class TestAutoLoad:
    async def test_small_window_completes_in_one_batch(self, settings, registry):
        source = StaticSource([make_receipt(i, NOW - n * 3600) for n, i in enumerate("abc", 1)])
        loader = _loader(source, settings, registry)

        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()

        assert state.is_complete
        assert [r.id for r in state.receipts] == ["a", "b", "c"]
        assert state.total_fetched == 3
        assert state.current_batch == 1
        assert state.detected_limit == 250
        assert len(source.queries) == 1
        (flt,) = source.queries[0]
        assert flt.since == WEEK.since
        assert flt.until is None
        assert flt.limit == 1000

    async def test_empty_window_completes(self, settings, registry):
        source = StaticSource()
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()
        assert state.is_complete
        assert state.total_fetched == 0
        assert len(source.queries) == 1

    async def test_unbounded_window_exhausts_short_source(self, settings, registry):
        source = StaticSource([make_receipt(f"r{i}", NOW - i * 100 * DAY) for i in range(3)])
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, ALL_TIME)
        state = await loader.wait_idle()
        assert state.is_complete
        assert state.total_fetched == 3

    async def test_unbounded_empty_source_stops_after_zero_result_cap(self, settings, registry):
        source = StaticSource()
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, ALL_TIME)
        state = await loader.wait_idle()
        assert state.phase is LoadPhase.IDLE
        assert state.consecutive_zero_results == 3
        assert len(source.queries) == 3

    async def test_detects_source_cap_and_pages_backward(self, settings, registry):
        records = [make_receipt(f"r{i:04d}", NOW - 60 - i * 60) for i in range(2000)]
        source = StaticSource(records, cap=500)
        loader = _loader(source, settings, registry)

        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()

        assert state.is_complete
        assert state.total_fetched == 2000
        assert state.detected_limit == 500
        limits = [q[0].limit for q in source.queries]
        assert limits[0] == 1000
        assert all(limit == 500 for limit in limits[1:])
        assert len(limits) == 5
        # each page starts strictly before the oldest record seen so far
        untils = [q[0].until for q in source.queries[1:]]
        assert untils == sorted(untils, reverse=True)
        assert len({r.id for r in state.receipts}) == 2000

    async def test_invalid_receipts_are_dropped(self, settings, registry):
        bogus = Record(id="bogus", pubkey="x", created_at=NOW - 10, kind=ZAP_RECEIPT_KIND, tags=(("p", SUBJECT),))
        source = StaticSource([make_receipt("good", NOW - 20), bogus])
        loader = _loader(source, settings, registry, accept=is_valid_zap_receipt)
        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()
        assert [r.id for r in state.receipts] == ["good"]
        assert registry.records.size(SUBJECT) == 1

    async def test_extra_source_failure_is_tolerated(self, settings, registry):
        primary = StaticSource([make_receipt("a", NOW - 10)])
        extra = StaticSource([make_receipt("b", NOW - 20)], url="wss://two.test")
        sources = SourceRegistry()
        sources.register(extra)
        loader = _loader(
            primary,
            settings,
            registry,
            connector=sources.connect,
            extra_urls=["wss://two.test", "wss://missing.test"],
        )
        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()
        assert state.is_complete
        assert {r.id for r in state.receipts} == {"a", "b"}
        assert state.error is None

    async def test_overlapping_sources_merge_newest_first(self, settings, registry):
        primary = StaticSource([make_receipt("a", NOW - DAY), make_receipt("b", NOW - 2 * DAY)])
        extra = StaticSource([make_receipt("b", NOW - 2 * DAY), make_receipt("c", NOW - 6 * DAY)], url="wss://two.test")
        sources = SourceRegistry()
        sources.register(extra)
        loader = _loader(primary, settings, registry, connector=sources.connect, extra_urls=["wss://two.test"])

        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()

        assert [r.id for r in state.receipts] == ["a", "b", "c"]
        assert state.is_complete
        assert state.current_batch == 1
        assert state.total_fetched == 3


@pytest.mark.asyncio
class TestWindowSwitching:
    async def test_widening_during_fetch_keeps_paging(self, settings, registry):
        source = GatedSource([make_receipt("recent", NOW - DAY), make_receipt("older", NOW - 20 * DAY)])
        loader = _loader(source, settings, registry)

        await loader.set_subject(SUBJECT, WEEK)
        await source.started.wait()
        loader.set_window(MONTH)
        source.release()
        state = await loader.wait_idle()

        assert [r.id for r in state.receipts] == ["recent", "older"]
        assert state.is_complete
        assert len(source.queries) == 2
        first, second = (q[0] for q in source.queries)
        assert first.since == WEEK.since
        assert second.since == MONTH.since
        assert second.until == NOW - DAY - 1

    async def test_narrowing_during_fetch_completes_from_cache(self, settings, registry):
        source = GatedSource([make_receipt("recent", NOW - DAY), make_receipt("older", NOW - 20 * DAY)])
        loader = _loader(source, settings, registry)

        await loader.set_subject(SUBJECT, MONTH)
        await source.started.wait()
        loader.set_window(WEEK)
        source.release()
        state = await loader.wait_idle()

        assert [r.id for r in state.receipts] == ["recent"]
        assert state.is_complete
        assert len(source.queries) == 1
        assert registry.records.size(SUBJECT) == 2

    async def test_widening_window_resumes_from_oldest_cached(self, settings, registry):
        source = StaticSource([make_receipt("recent", NOW - DAY), make_receipt("older", NOW - 10 * DAY)])
        loader = _loader(source, settings, registry)

        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()
        assert state.is_complete
        assert [r.id for r in state.receipts] == ["recent"]

        loader.set_window(MONTH)
        state = await loader.wait_idle()

        assert state.is_complete
        assert [r.id for r in state.receipts] == ["recent", "older"]
        assert len(source.queries) == 2
        (second,) = source.queries[1]
        assert second.since == MONTH.since
        assert second.until == NOW - DAY - 1
        assert state.current_batch == 2

    async def test_narrowing_window_uses_cache_only(self, settings, registry):
        source = StaticSource([make_receipt("recent", NOW - DAY), make_receipt("older", NOW - 10 * DAY)])
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, MONTH)
        await loader.wait_idle()
        queries = len(source.queries)

        state = loader.set_window(WEEK)
        assert state.is_complete
        assert [r.id for r in state.receipts] == ["recent"]
        await loader.wait_idle()
        assert len(source.queries) == queries

    async def test_switching_subject_keeps_cache(self, settings, registry):
        source = StaticSource([make_receipt("a", NOW - 10)])
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        await loader.wait_idle()

        await loader.set_subject("d" * 64, WEEK)
        await loader.wait_idle()
        assert registry.records.size(SUBJECT) == 1
        assert loader.state.current_batch == 1
        assert loader.subject == "d" * 64


@pytest.mark.asyncio
class TestCircuitBreaker:
    async def test_auto_load_disabled_after_three_failures(self, settings, registry):
        source = FailingSource()
        loader = _loader(source, settings, registry)

        await loader.set_subject(SUBJECT, WEEK)
        state = await loader.wait_idle()

        assert source.calls == 3
        assert state.phase is LoadPhase.FAILED
        assert state.consecutive_failures == 3
        assert not state.auto_load_enabled
        assert state.can_load_more
        assert state.error == "All 1 sources failed"

    async def test_manual_retry_after_breaker(self, settings, registry):
        source = FailingSource()
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        await loader.wait_idle()

        state = await loader.load_more()
        await loader.wait_idle()
        assert source.calls == 4
        assert state.consecutive_failures == 1
        assert not state.auto_load_enabled

    async def test_restart_auto_load_retries(self, settings, registry):
        source = FailingSource()
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        await loader.wait_idle()

        state = loader.restart_auto_load()
        assert state.auto_load_enabled
        assert state.phase is LoadPhase.IDLE
        await loader.wait_idle()
        assert source.calls == 6
        assert not loader.state.auto_load_enabled

    async def test_toggle_auto_load_prevents_start(self, settings, registry):
        source = StaticSource([make_receipt("a", NOW - 10)])
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        loader.toggle_auto_load()
        await loader.wait_idle()
        assert source.queries == []
        assert not loader.loading_descriptor()["auto_load_enabled"]


@pytest.mark.asyncio
class TestConcurrency:
    async def test_request_during_fetch_is_dropped(self, settings, registry):
        source = SlowSource([make_receipt("a", NOW - 10)], delay=5)
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        await asyncio.wait_for(source.started.wait(), timeout=1)

        state = await loader.load_more()
        assert state.is_loading
        assert loader.state.current_batch == 0

        await loader.cancel()
        assert source.cancelled
        assert loader.state.phase is LoadPhase.IDLE
        assert registry.records.size(SUBJECT) == 0

    async def test_subject_switch_discards_in_flight_fetch(self, settings, registry):
        source = SlowSource([make_receipt("a", NOW - 10)], delay=5)
        loader = _loader(source, settings, registry)
        await loader.set_subject(SUBJECT, WEEK)
        await asyncio.wait_for(source.started.wait(), timeout=1)

        await loader.set_subject("d" * 64, WEEK)
        assert source.cancelled
        assert loader.state.current_batch == 0
        assert not loader.state.is_loading
        await loader.cancel()

    async def test_load_more_without_subject_is_noop(self, settings, registry):
        loader = _loader(StaticSource(), settings, registry)
        state = await loader.load_more()
        assert state.phase is LoadPhase.IDLE
        assert state.current_batch == 0
