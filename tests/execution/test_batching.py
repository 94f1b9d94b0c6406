"""Tests for zapspine.execution.batching module."""

import pytest

from zapspine.core.settings import ZapSpineSettings
from zapspine.execution.batching import BatchController, BatchLimits


class TestBatchLimits:
    def test_defaults(self):
        limits = BatchLimits()
        assert (limits.minimum, limits.initial, limits.maximum) == (250, 1000, 2000)

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            BatchLimits(initial=100, minimum=250, maximum=2000)

    def test_clamp(self):
        limits = BatchLimits()
        assert limits.clamp(10) == 250
        assert limits.clamp(5000) == 2000
        assert limits.clamp(700) == 700

    def test_from_settings(self):
        s = ZapSpineSettings(min_batch_size=10, initial_batch_size=20, max_batch_size=30, _env_file=None)
        assert BatchLimits.from_settings(s) == BatchLimits(initial=20, minimum=10, maximum=30)


class TestNextBatchSize:
    def test_initial_size_without_detected_limit(self):
        assert BatchController().next_batch_size(None) == 1000

    def test_detected_limit_used(self):
        assert BatchController().next_batch_size(500) == 500

    def test_detected_limit_clamped_to_max(self):
        assert BatchController().next_batch_size(5000) == 2000

    def test_automatic_repeat_uses_minimum_without_detection(self):
        controller = BatchController()
        assert controller.next_batch_size(None, automatic=True, batch_index=0) == 1000
        assert controller.next_batch_size(None, automatic=True, batch_index=1) == 250

    def test_automatic_repeat_uses_detected_limit(self):
        assert BatchController().next_batch_size(500, automatic=True, batch_index=3) == 500

    @pytest.mark.parametrize("detected", [None, 1, 250, 499, 2000, 10_000])
    @pytest.mark.parametrize("automatic", [False, True])
    def test_always_within_bounds(self, detected, automatic):
        size = BatchController().next_batch_size(detected, automatic=automatic, batch_index=2)
        assert 250 <= size <= 2000


class TestDetectLimit:
    def test_short_page_sets_limit(self):
        assert BatchController().detect_limit(500, 1000, None) == 500

    def test_limit_floors_at_minimum(self):
        assert BatchController().detect_limit(3, 1000, None) == 250

    def test_full_page_keeps_previous(self):
        assert BatchController().detect_limit(1000, 1000, 700) == 700

    def test_empty_page_keeps_previous(self):
        assert BatchController().detect_limit(0, 1000, None) is None

    def test_expected_batch_size(self):
        assert BatchController.expected_batch_size(500, 1000) == 500
        assert BatchController.expected_batch_size(None, 1000) == 1000
