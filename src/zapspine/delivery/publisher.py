"""Publisher protocol: transmit one pre-signed event to one relay.

The worker never speaks the relay protocol itself. A deployment supplies
a ``Publisher`` whose ``publish`` returns once the relay accepted the
event and raises on rejection, error or timeout.

``DryRunPublisher`` records attempts without any network I/O; the CLI
uses it when no real transport is configured.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from zapspine.core.errors import DeliveryError


@runtime_checkable
class Publisher(Protocol):
    async def publish(self, url: str, event: dict[str, Any], *, timeout: float) -> None:
        """Send ``["EVENT", event]`` to ``url``; raise unless the relay accepted it."""
        ...


def to_websocket_url(url: str) -> str:
    """Map ``http(s)://`` relay addresses to ``ws(s)://``.

    Examples:
        >>> to_websocket_url("https://relay.example")
        'wss://relay.example'
        >>> to_websocket_url("wss://relay.example")
        'wss://relay.example'
    """
    if url.startswith("http://"):
        return "ws://" + url[len("http://") :]
    if url.startswith("https://"):
        return "wss://" + url[len("https://") :]
    return url


@dataclass
class PublishAttempt:
    url: str
    event_id: str | None
    accepted: bool


@dataclass
class DryRunPublisher:
    """Accepts everything except ``reject_urls``; keeps a log of attempts."""

    reject_urls: set[str] = field(default_factory=set)
    delay: float = 0.0
    attempts: list[PublishAttempt] = field(default_factory=list)

    @classmethod
    def rejecting(cls, urls: Iterable[str]) -> DryRunPublisher:
        return cls(reject_urls={to_websocket_url(u) for u in urls})

    async def publish(self, url: str, event: dict[str, Any], *, timeout: float) -> None:
        if self.delay:
            async with asyncio.timeout(timeout):
                await asyncio.sleep(self.delay)
        accepted = url not in self.reject_urls
        self.attempts.append(PublishAttempt(url=url, event_id=event.get("id"), accepted=accepted))
        if not accepted:
            raise DeliveryError(f"Relay rejected event: {url}").with_context(source_url=url)


__all__ = ["Publisher", "to_websocket_url", "PublishAttempt", "DryRunPublisher"]
