"""zap-spine core — errors, logging, settings, models, windows and caches.

Architecture::

    errors.py      Structured error hierarchy (ZapSpineError, ErrorCategory)
    logging.py     structlog configuration and context binding
    settings.py    ZapSpineSettings (pydantic-settings)
    models.py      Record, QueryFilter
    windows.py     TimeWindow presets and custom ranges
    cache.py       RecordCache, LookupCache, CacheRegistry

Core modules import nothing from the execution, analytics or delivery
layers.
"""

from zapspine.core.cache import CacheRegistry, LookupCache, RecordCache, clear_all, default_registry
from zapspine.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    IncompleteWindowError,
    MissingSubjectError,
    ZapSpineError,
)
from zapspine.core.models import QueryFilter, Record, Subject, sort_newest_first
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.core.windows import CustomRange, TimeWindow, filter_by_window, resolve_window

__all__ = [
    "CacheRegistry",
    "LookupCache",
    "RecordCache",
    "clear_all",
    "default_registry",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "IncompleteWindowError",
    "MissingSubjectError",
    "ZapSpineError",
    "QueryFilter",
    "Record",
    "Subject",
    "sort_newest_first",
    "ZapSpineSettings",
    "get_settings",
    "CustomRange",
    "TimeWindow",
    "filter_by_window",
    "resolve_window",
]
