"""Delivery worker — publishes due scheduled posts to their target relays.

ARCHITECTURE
────────────
::

    DeliveryWorker.run_once(now)
      │  repo.due(now, delivery_batch_size)          pending, oldest first
      ▼
    groups of delivery_max_workers posts, asyncio.gather
      │
      └── _process(post)
            ├── signed event missing / unparseable → mark_failed
            ├── publish to every relay concurrently (relay timeout each)
            ├── >= 1 relay accepted → mark_published (partial failure noted)
            └── none accepted       → mark_failed
      a crash inside _process also ends in mark_failed

    DeliveryWorker.run_forever(poll_interval, stop)   periodic job

Usage::

    worker = DeliveryWorker(repo, publisher, settings)
    result = await worker.run_once()
    print(result.successful, result.failed)
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from zapspine.core.errors import error_message
from zapspine.core.logging import get_logger
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.delivery.models import ScheduledPost, utc_now
from zapspine.delivery.publisher import Publisher, to_websocket_url
from zapspine.delivery.repository import ScheduledPostRepository

logger = get_logger(__name__)


@dataclass
class PostResult:
    """Outcome of one scheduled post."""

    post_id: str
    success: bool
    kind: int | None = None
    published_to: int = 0
    total_relays: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_id": self.post_id,
            "success": self.success,
            "kind": self.kind,
            "published_to": self.published_to,
            "total_relays": self.total_relays,
            "error": self.error,
        }


@dataclass
class DeliveryRunResult:
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[PostResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


def _decode_event(raw: Any) -> dict[str, Any]:
    if raw is None:
        raise ValueError("Signed event is null")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse signed event: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError("Failed to parse signed event: not an object")
    return raw


class DeliveryWorker:
    """Publishes due posts with bounded concurrency."""

    def __init__(
        self,
        repo: ScheduledPostRepository,
        publisher: Publisher,
        settings: ZapSpineSettings | None = None,
    ) -> None:
        self.repo = repo
        self.publisher = publisher
        self.settings = settings or get_settings()

    async def run_once(self, now: datetime | None = None) -> DeliveryRunResult:
        """One pass over the posts that are due at ``now``."""
        now = now or utc_now()
        posts = self.repo.due(now, limit=self.settings.delivery_batch_size)
        logger.info("delivery.run_started", due=len(posts))
        if not posts:
            return DeliveryRunResult()

        run = DeliveryRunResult(total=len(posts))
        step = self.settings.delivery_max_workers
        for start in range(0, len(posts), step):
            group = posts[start : start + step]
            outcomes = await asyncio.gather(*[self._process(p) for p in group], return_exceptions=True)
            for post, outcome in zip(group, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    logger.error("delivery.post_crashed", post_id=post.id, error=str(outcome))
                    outcome = self._fail(post, f"Processing error: {error_message(outcome)}")
                run.results.append(outcome)

        run.successful = sum(1 for r in run.results if r.success)
        run.failed = run.total - run.successful
        logger.info(
            "delivery.run_complete",
            total=run.total,
            successful=run.successful,
            failed=run.failed,
        )
        return run

    async def _process(self, post: ScheduledPost) -> PostResult:
        try:
            event = _decode_event(post.signed_event)
        except ValueError as e:
            return self._fail(post, str(e))

        relays = list(post.relays)
        if not relays:
            return self._fail(post, "No target relays")

        try:
            outcomes = await asyncio.gather(*[self._publish(url, event) for url in relays])
        except Exception as e:
            return self._fail(post, f"Processing error: {error_message(e)}")

        accepted = sum(1 for error in outcomes if error is None)
        errors = [error for error in outcomes if error is not None]
        kind = event.get("kind") if isinstance(event.get("kind"), int) else post.kind

        if accepted > 0:
            partial = None
            if errors:
                partial = f"Partially published ({accepted}/{len(relays)} relays). Last error: {errors[-1]}"
            self.repo.mark_published(post.id, partial)
            logger.info(
                "delivery.post_published",
                post_id=post.id,
                published_to=accepted,
                total_relays=len(relays),
            )
            return PostResult(
                post_id=post.id,
                success=True,
                kind=kind,
                published_to=accepted,
                total_relays=len(relays),
                error=partial,
            )

        last = errors[-1] if errors else "Unknown error"
        result = self._fail(post, f"Failed to publish to any relay. Last error: {last}")
        result.kind = kind
        result.total_relays = len(relays)
        return result

    async def _publish(self, url: str, event: dict[str, Any]) -> str | None:
        """Publish to one relay; returns the error text, or None when accepted."""
        timeout = self.settings.relay_timeout_seconds
        target = to_websocket_url(url)
        try:
            async with asyncio.timeout(timeout):
                await self.publisher.publish(target, event, timeout=timeout)
        except TimeoutError:
            logger.warning("delivery.relay_timeout", url=url)
            return f"Timeout connecting to relay {url}"
        except Exception as e:
            logger.warning("delivery.relay_failed", url=url, error=error_message(e))
            return error_message(e)
        return None

    def _fail(self, post: ScheduledPost, message: str) -> PostResult:
        self.repo.mark_failed(post.id, message)
        logger.warning("delivery.post_failed", post_id=post.id, error=message)
        return PostResult(post_id=post.id, success=False, error=message)

    async def run_forever(self, poll_interval: float = 60.0, stop: asyncio.Event | None = None) -> None:
        """Call ``run_once`` every ``poll_interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop.wait(), timeout=poll_interval)
            except TimeoutError:
                continue


__all__ = ["PostResult", "DeliveryRunResult", "DeliveryWorker"]
