"""
Shared pytest fixtures for zap-spine tests.

This module provides:
- Zero-delay settings so pagination runs without real pauses
- A fresh cache registry per test
- Reset of the process-wide settings cache

Builders and fake sources live in ``tests/_support/fakes.py``.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from zapspine.core.cache import CacheRegistry
from zapspine.core.settings import ZapSpineSettings, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Generator[None, None, None]:
    """Settings read from the environment must not leak between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> ZapSpineSettings:
    """Default limits, no pauses."""
    return ZapSpineSettings(
        batch_delay_ms=0,
        auto_load_delay_ms=0,
        custom_range_delay_ms=0,
        lookup_batch_delay_ms=0,
        _env_file=None,
    )


@pytest.fixture
def registry() -> CacheRegistry:
    return CacheRegistry()
