"""Tests for zapspine.core.settings module."""

import pytest
from pydantic import ValidationError

from zapspine.core.settings import ZapSpineSettings, get_settings


class TestDefaults:
    def test_batch_defaults(self):
        s = ZapSpineSettings(_env_file=None)
        assert (s.min_batch_size, s.initial_batch_size, s.max_batch_size) == (250, 1000, 2000)
        assert s.timeout_seconds == 8.0
        assert s.max_consecutive_failures == 3
        assert s.max_consecutive_zero_results == 3
        assert s.boundary_tolerance_seconds == 3600

    def test_derived_seconds(self):
        s = ZapSpineSettings(batch_delay_ms=300, relay_timeout_ms=2500, _env_file=None)
        assert s.batch_delay_seconds == 0.3
        assert s.relay_timeout_seconds == 2.5


class TestValidation:
    def test_batch_bounds_must_be_ordered(self):
        with pytest.raises(ValidationError):
            ZapSpineSettings(min_batch_size=500, initial_batch_size=100, _env_file=None)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            ZapSpineSettings(batch_delay_ms=-1, _env_file=None)


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ZAPSPINE_TIMEOUT_MS", "4000")
        monkeypatch.setenv("ZAPSPINE_TIMEZONE", "Europe/Berlin")
        s = ZapSpineSettings(_env_file=None)
        assert s.timeout_seconds == 4.0
        assert s.timezone == "Europe/Berlin"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
