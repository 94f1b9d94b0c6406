"""Tests for zapspine.delivery.models and publisher helpers."""

from datetime import UTC, datetime, timedelta

import pytest

from zapspine.core.errors import DeliveryError
from zapspine.delivery.models import ScheduledPost, time_remaining, to_iso
from zapspine.delivery.publisher import DryRunPublisher, Publisher, to_websocket_url

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class TestTimeRemaining:
    @pytest.mark.parametrize(
        "delta,text",
        [
            (timedelta(days=2, hours=3), "in 2 days"),
            (timedelta(days=1), "in 1 day"),
            (timedelta(hours=1, minutes=59), "in 1 hour"),
            (timedelta(minutes=5), "in 5 minutes"),
            (timedelta(seconds=1), "in 1 second"),
        ],
    )
    def test_future(self, delta, text):
        remaining = time_remaining(NOW + delta, NOW)
        assert remaining.text == text
        assert not remaining.is_past

    def test_past_is_due(self):
        remaining = time_remaining(NOW - timedelta(minutes=1), NOW)
        assert remaining.text == "Due now"
        assert remaining.is_past
        assert remaining.seconds == 0

    def test_naive_means_utc(self):
        assert time_remaining(datetime(2024, 6, 1, 13, 0), NOW).text == "in 1 hour"


def test_to_iso_normalises_to_utc():
    assert to_iso(datetime.fromisoformat("2024-06-01T14:00:00+02:00")) == "2024-06-01T12:00:00+00:00"
    assert to_iso(datetime(2024, 6, 1, 12, 0)) == "2024-06-01T12:00:00+00:00"


def test_scheduled_datetime():
    post = ScheduledPost(id="p", scheduled_for="2024-06-01T12:00:00+00:00")
    assert post.scheduled_datetime == NOW
    assert post.to_dict()["scheduled_for"] == "2024-06-01T12:00:00+00:00"


class TestPublisher:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://relay.test", "wss://relay.test"),
            ("http://relay.test", "ws://relay.test"),
            ("wss://relay.test", "wss://relay.test"),
        ],
    )
    def test_to_websocket_url(self, url, expected):
        assert to_websocket_url(url) == expected

    def test_dry_run_satisfies_protocol(self):
        assert isinstance(DryRunPublisher(), Publisher)

    @pytest.mark.asyncio
    async def test_rejecting(self):
        publisher = DryRunPublisher.rejecting(["https://bad.test"])
        await publisher.publish("wss://good.test", {"id": "e"}, timeout=1)
        with pytest.raises(DeliveryError):
            await publisher.publish("wss://bad.test", {"id": "e"}, timeout=1)
        assert [a.accepted for a in publisher.attempts] == [True, False]
