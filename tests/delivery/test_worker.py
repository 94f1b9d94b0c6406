"""Tests for zapspine.delivery.worker module."""

import asyncio
import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from zapspine.core.settings import ZapSpineSettings
from zapspine.delivery.models import ScheduledPostCreate
from zapspine.delivery.publisher import DryRunPublisher
from zapspine.delivery.repository import ScheduledPostRepository
from zapspine.delivery.worker import DeliveryWorker

USER = "u" * 64
T0 = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
EVENT = {"id": "evt1", "kind": 1, "content": "scheduled hello", "sig": "s"}


@pytest.fixture
def repo() -> ScheduledPostRepository:
    repo = ScheduledPostRepository(sqlite3.connect(":memory:"))
    repo.ensure_schema()
    return repo


@pytest.fixture
def worker_settings() -> ZapSpineSettings:
    return ZapSpineSettings(delivery_max_workers=2, relay_timeout_ms=200, _env_file=None)


def _schedule(repo, relays=("https://a.test", "wss://b.test"), when=T0, event=EVENT):
    return repo.create(
        ScheduledPostCreate(user_pubkey=USER, signed_event=event, relays=list(relays), scheduled_for=when)
    )


@pytest.mark.asyncio
class TestRunOnce:
    async def test_nothing_due(self, repo, worker_settings):
        _schedule(repo, when=T0 + timedelta(hours=1))
        result = await DeliveryWorker(repo, DryRunPublisher(), worker_settings).run_once(T0)
        assert result.total == 0
        assert result.results == []

    async def test_publishes_to_every_relay(self, repo, worker_settings):
        post = _schedule(repo)
        publisher = DryRunPublisher()
        result = await DeliveryWorker(repo, publisher, worker_settings).run_once(T0)

        assert (result.total, result.successful, result.failed) == (1, 1, 0)
        (outcome,) = result.results
        assert outcome.published_to == 2
        assert outcome.kind == 1
        assert outcome.error is None
        assert sorted(a.url for a in publisher.attempts) == ["wss://a.test", "wss://b.test"]
        assert all(a.event_id == "evt1" for a in publisher.attempts)

        stored = repo.get(post.id)
        assert stored.status == "published"
        assert stored.error_message is None
        assert stored.published_at is not None

    async def test_partial_success_is_published_with_note(self, repo, worker_settings):
        post = _schedule(repo)
        publisher = DryRunPublisher.rejecting(["wss://b.test"])
        result = await DeliveryWorker(repo, publisher, worker_settings).run_once(T0)

        (outcome,) = result.results
        assert outcome.success
        assert outcome.published_to == 1
        assert outcome.total_relays == 2
        stored = repo.get(post.id)
        assert stored.status == "published"
        assert stored.error_message.startswith("Partially published (1/2 relays). Last error:")
        assert "wss://b.test" in stored.error_message

    async def test_all_relays_failing_marks_failed(self, repo, worker_settings):
        post = _schedule(repo)
        publisher = DryRunPublisher.rejecting(["https://a.test", "wss://b.test"])
        result = await DeliveryWorker(repo, publisher, worker_settings).run_once(T0)

        assert result.failed == 1
        stored = repo.get(post.id)
        assert stored.status == "failed"
        assert stored.retry_count == 1
        assert stored.error_message.startswith("Failed to publish to any relay. Last error:")

    async def test_relay_timeout(self, repo, worker_settings):
        post = _schedule(repo, relays=["wss://slow.test"])
        publisher = DryRunPublisher(delay=5)
        result = await DeliveryWorker(repo, publisher, worker_settings).run_once(T0)
        assert result.failed == 1
        assert "Timeout connecting to relay wss://slow.test" in repo.get(post.id).error_message

    async def test_null_event_fails_without_publishing(self, repo, worker_settings):
        post = _schedule(repo)
        repo.conn.execute("UPDATE scheduled_posts SET signed_event = NULL WHERE id = ?", (post.id,))
        publisher = DryRunPublisher()
        result = await DeliveryWorker(repo, publisher, worker_settings).run_once(T0)
        assert result.failed == 1
        assert publisher.attempts == []
        assert repo.get(post.id).error_message == "Signed event is null"

    async def test_unparseable_event_fails(self, repo, worker_settings):
        post = _schedule(repo)
        repo.conn.execute("UPDATE scheduled_posts SET signed_event = '{broken' WHERE id = ?", (post.id,))
        result = await DeliveryWorker(repo, DryRunPublisher(), worker_settings).run_once(T0)
        assert result.failed == 1
        assert repo.get(post.id).error_message.startswith("Failed to parse signed event")

    async def test_no_relays_fails(self, repo, worker_settings):
        post = _schedule(repo, relays=[])
        await DeliveryWorker(repo, DryRunPublisher(), worker_settings).run_once(T0)
        assert repo.get(post.id).error_message == "No target relays"

    async def test_processes_in_bounded_groups(self, repo, worker_settings):
        for _ in range(5):
            _schedule(repo, relays=["wss://a.test"])
        result = await DeliveryWorker(repo, DryRunPublisher(), worker_settings).run_once(T0)
        assert (result.total, result.successful) == (5, 5)
        assert repo.due(T0) == []

    async def test_result_to_dict(self, repo, worker_settings):
        _schedule(repo)
        result = await DeliveryWorker(repo, DryRunPublisher(), worker_settings).run_once(T0)
        data = result.to_dict()
        assert data["successful"] == 1
        assert data["results"][0]["published_to"] == 2

    async def test_crashed_post_is_marked_failed(self, repo, worker_settings):
        """A post whose processing raises is failed, not left pending."""

        class CrashingWorker(DeliveryWorker):
            async def _process(self, post):
                raise RuntimeError("boom")

        post = _schedule(repo)
        result = await CrashingWorker(repo, DryRunPublisher(), worker_settings).run_once(T0)

        assert (result.total, result.successful, result.failed) == (1, 0, 1)
        assert "boom" in result.results[0].error
        stored = repo.get(post.id)
        assert stored.status == "failed"
        assert "boom" in stored.error_message
        assert repo.due(T0) == []


@pytest.mark.asyncio
async def test_run_forever_stops(repo, worker_settings):
    stop = asyncio.Event()
    worker = DeliveryWorker(repo, DryRunPublisher(), worker_settings)
    task = asyncio.ensure_future(worker.run_forever(poll_interval=0.01, stop=stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=1)
    assert task.done()
