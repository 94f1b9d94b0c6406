"""Settings for the zap-spine aggregator.

All tunables of the fetch engine, the auxiliary lookups and the delivery
worker live in one ``ZapSpineSettings`` model. Values come from keyword
arguments, ``ZAPSPINE_*`` environment variables or a ``.env`` file, in that
order of precedence.

Manifesto:
    The fetch engine's behaviour is defined by a handful of constants
    (batch bounds, deadlines, breaker thresholds). Keeping them in one
    validated model means tests can construct tight configurations
    (zero delays, tiny batches) without monkeypatching module globals.

    - **Pydantic validation:** batch bounds are checked at construction
    - **Environment-driven:** ``ZAPSPINE_TIMEOUT_MS=4000`` just works
    - **Sensible defaults:** match the limits observed on public relays

Examples:
    >>> from zapspine.core.settings import ZapSpineSettings
    >>> s = ZapSpineSettings(batch_delay_ms=0)
    >>> s.timeout_seconds
    8.0

Tags:
    settings, configuration, pydantic, environment, zap-spine

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ZapSpineSettings(BaseSettings):
    """Aggregator, lookup and delivery configuration.

    Fields
    ──────
    initial_batch_size   : first request size, large to discover source limits
    min_batch_size       : floor for detected limits and automatic batches
    max_batch_size       : ceiling to keep queries inside the deadline
    timeout_ms           : hard deadline of one fetch cycle
    batch_delay_ms       : pause before an automatic continuation
    auto_load_delay_ms   : pause before auto-starting on window activation
    max_consecutive_*    : circuit-breaker thresholds
    *_tolerance_seconds  : how close to ``since`` counts as "boundary reached"
    continue_*           : what counts as a substantial batch
    *_chunk_size         : ids per auxiliary lookup request
    delivery_*           : scheduled-delivery worker limits
    """

    model_config = SettingsConfigDict(
        env_prefix="ZAPSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Batch sizing ─────────────────────────────────────────────
    initial_batch_size: int = Field(default=1000, gt=0)
    min_batch_size: int = Field(default=250, gt=0)
    max_batch_size: int = Field(default=2000, gt=0)

    # ── Pagination loop ──────────────────────────────────────────
    timeout_ms: int = Field(default=8000, gt=0)
    batch_delay_ms: int = Field(default=300, ge=0)
    auto_load_delay_ms: int = Field(default=1000, ge=0)
    custom_range_delay_ms: int = Field(default=100, ge=0)
    max_consecutive_failures: int = Field(default=3, gt=0)
    max_consecutive_zero_results: int = Field(default=3, gt=0)
    boundary_tolerance_seconds: int = Field(default=3600, ge=0)
    extended_boundary_tolerance_seconds: int = Field(default=14400, ge=0)
    continue_fraction: float = Field(default=0.9, gt=0, le=1)
    continue_min_records: int = Field(default=100, ge=0)

    # ── Auxiliary lookups ────────────────────────────────────────
    content_chunk_size: int = Field(default=150, gt=0)
    profile_chunk_size: int = Field(default=100, gt=0)
    lookup_max_concurrent: int = Field(default=3, gt=0)
    lookup_batch_delay_ms: int = Field(default=50, ge=0)
    content_timeout_ms: int = Field(default=12000, gt=0)
    profile_timeout_ms: int = Field(default=15000, gt=0)

    # ── Delivery worker ──────────────────────────────────────────
    delivery_batch_size: int = Field(default=25, gt=0)
    delivery_max_workers: int = Field(default=5, gt=0)
    relay_timeout_ms: int = Field(default=10000, gt=0)

    # ── Observability / presentation ─────────────────────────────
    log_level: str = "INFO"
    log_format: str = "console"
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _check_batch_bounds(self) -> ZapSpineSettings:
        if not self.min_batch_size <= self.initial_batch_size <= self.max_batch_size:
            raise ValueError(
                "batch sizes must satisfy min_batch_size <= initial_batch_size <= max_batch_size"
            )
        return self

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def batch_delay_seconds(self) -> float:
        return self.batch_delay_ms / 1000

    @property
    def auto_load_delay_seconds(self) -> float:
        return self.auto_load_delay_ms / 1000

    @property
    def relay_timeout_seconds(self) -> float:
        return self.relay_timeout_ms / 1000


@lru_cache(maxsize=1)
def get_settings() -> ZapSpineSettings:
    """Process-wide settings instance (environment read once)."""
    return ZapSpineSettings()


__all__ = ["ZapSpineSettings", "get_settings"]
