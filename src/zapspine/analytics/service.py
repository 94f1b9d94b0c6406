"""Zap analytics service: pagination loop + lookups + aggregations.

Usage:
    service = ZapAnalyticsService(executor, registry, settings, extra_urls=urls)
    await service.activate(pubkey, "30d")
    await service.wait_idle()
    report = await service.report()

Configuration errors (no subject, incomplete or unknown range) never
reach a source: ``report()`` then returns ``empty_report`` carrying the
error text with ``is_complete=True``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable

from zapspine.analytics.report import AnalyticsReport, build_report, empty_report
from zapspine.analytics.zaps import enrich_zap, is_valid_zap_receipt, parse_zap_receipts
from zapspine.core.cache import CacheRegistry, default_registry
from zapspine.core.errors import ConfigError, MissingSubjectError
from zapspine.core.logging import get_logger
from zapspine.core.models import Subject
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.core.windows import CustomRange, TimeWindow, resolve_window
from zapspine.execution.fanout import FanoutExecutor
from zapspine.execution.loader import ProgressiveLoader
from zapspine.execution.lookups import content_lookup, profile_lookup
from zapspine.execution.pagination import LoadingState

logger = get_logger(__name__)


class ZapAnalyticsService:
    """Analytics for one active subject at a time."""

    def __init__(
        self,
        executor: FanoutExecutor,
        registry: CacheRegistry | None = None,
        settings: ZapSpineSettings | None = None,
        *,
        extra_urls: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry or default_registry()
        self.clock = clock
        self.loader = ProgressiveLoader(
            executor,
            self.registry.records,
            settings=self.settings,
            accept=is_valid_zap_receipt,
            extra_urls=extra_urls,
        )
        self.content = content_lookup(executor, self.registry.content, self.settings)
        self.profiles = profile_lookup(executor, self.registry.profiles, self.settings)

        self.range_name = "7d"
        self.window: TimeWindow | None = None
        self.config_error: str | None = None

    def _now(self) -> int:
        return int(self.clock())

    async def activate(
        self,
        subject: Subject | None,
        range_name: str = "7d",
        custom: CustomRange | None = None,
    ) -> LoadingState | None:
        """Select subject and window; starts automatic loading when needed."""
        self.range_name = range_name
        try:
            if not subject:
                raise MissingSubjectError()
            try:
                window = resolve_window(range_name, custom, self._now())
            except ValueError as e:
                raise ConfigError(str(e), cause=e)
        except ConfigError as e:
            self.config_error = e.message
            self.window = None
            await self.loader.cancel()
            logger.info("analytics.config_error", error=e.message, range=range_name)
            return None

        self.config_error = None
        self.window = window
        if subject != self.loader.subject:
            return await self.loader.set_subject(subject, window)
        return self.loader.set_window(window)

    async def load_more(self) -> LoadingState:
        """Manual "load more"."""
        if self.config_error is not None:
            return self.loader.state
        return await self.loader.load_more(automatic=False)

    async def wait_idle(self) -> LoadingState:
        return await self.loader.wait_idle()

    def restart_auto_load(self) -> LoadingState:
        return self.loader.restart_auto_load()

    def toggle_auto_load(self) -> LoadingState:
        return self.loader.toggle_auto_load()

    async def close(self) -> None:
        await self.loader.cancel()

    async def report(self) -> AnalyticsReport:
        """Aggregate the current window's receipts into a report."""
        if self.config_error is not None or self.window is None:
            error = self.config_error or MissingSubjectError().message
            return empty_report(self.range_name, {"error": error})

        zaps = parse_zap_receipts(list(self.loader.state.receipts))

        # addressable targets ("kind:pubkey:d") cannot be fetched by id
        event_ids = [
            z.zapped_event.id for z in zaps if z.zapped_event is not None and ":" not in z.zapped_event.id
        ]
        content = await self.content.lookup(event_ids)
        pubkeys = [z.zapper.pubkey for z in zaps] + [r.pubkey for r in content.values()]
        profiles = await self.profiles.lookup(pubkeys)

        enriched = [enrich_zap(z, content, profiles) for z in zaps]
        report = build_report(
            enriched,
            self.window,
            self.loader.loading_descriptor(),
            self._now(),
            self.settings.timezone,
        )
        logger.debug(
            "analytics.report_built",
            subject=self.loader.subject,
            range=self.range_name,
            zaps=report.total_zaps,
            sats=report.total_sats,
        )
        return report


__all__ = ["ZapAnalyticsService"]
