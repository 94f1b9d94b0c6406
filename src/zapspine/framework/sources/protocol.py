"""
Record source protocol.

The aggregator never speaks a wire protocol itself. Every source is an
object with an async ``query`` method; how it reaches its data (WebSocket
relay, HTTP API, local dump) is the implementation's business.

Design Principles:
- Protocol over Inheritance: any object with ``url`` and ``query`` works
- Registry-Driven: extra sources are resolved by URL through a connector
- Failure is local: a connector may raise for a bad URL and the fan-out
  executor treats that source as contributing nothing

Usage:
    from zapspine.framework.sources import SourceRegistry, read_source_urls

    registry = SourceRegistry()
    registry.register(primary)
    registry.register(FileRecordSource("wss://relay.two", "/dumps/two.jsonl"))

    urls = read_source_urls(descriptors)      # read-capable only
    source = registry.connect(urls[0])        # raises if unknown
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from zapspine.core.errors import SourceUnavailableError
from zapspine.core.models import QueryFilter, Record

_IPV4_PREFIX = re.compile(r"^\d+\.\d+\.\d+\.\d+")


@runtime_checkable
class RecordSource(Protocol):
    """
    Protocol for anything that can answer a record query.

    Implementations must be safe to call concurrently from several
    logical callers. Cancellation (deadline expiry) arrives as
    ``asyncio.CancelledError`` at the await point.
    """

    @property
    def url(self) -> str:
        """Address of the source."""
        ...

    async def query(self, filters: Sequence[QueryFilter]) -> list[Record]:
        """
        Return records matching any of ``filters``.

        Raises:
            Any exception on transport failure or rejection.
        """
        ...


SourceConnector = Callable[[str], RecordSource]
"""Resolves a source URL to a queryable source; may raise."""


@dataclass(frozen=True)
class SourceDescriptor:
    """Externally-held source metadata (URL plus read/write capability)."""

    url: str
    read: bool = True
    write: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SourceDescriptor:
        return cls(
            url=str(data["url"]),
            read=bool(data.get("read", True)),
            write=bool(data.get("write", True)),
        )


def read_source_urls(descriptors: Iterable[SourceDescriptor] | None) -> list[str]:
    """URLs of the read-capable sources, in the order given."""
    if not descriptors:
        return []
    return [d.url for d in descriptors if d.read]


def write_source_urls(descriptors: Iterable[SourceDescriptor] | None) -> list[str]:
    """URLs of the write-capable sources, in the order given."""
    if not descriptors:
        return []
    return [d.url for d in descriptors if d.write]


def normalize_source_url(url: str) -> str:
    """Add ``wss://`` to bare host names.

    URLs that already carry a scheme are returned as-is, as are
    ``localhost`` and IPv4 literals (the caller must pick ws:// or wss://
    explicitly for those).
    """
    trimmed = url.strip()
    if not trimmed:
        return trimmed
    if "://" in trimmed:
        return trimmed
    if trimmed.startswith("localhost") or _IPV4_PREFIX.match(trimmed):
        return trimmed
    return f"wss://{trimmed}"


class SourceRegistry:
    """
    Registry of source instances keyed by URL.

    Its ``connect`` method is a ``SourceConnector`` suitable for the
    fan-out executor.

    Usage:
        registry = SourceRegistry()
        registry.register(source)
        executor = FanoutExecutor(primary, registry.connect)
    """

    def __init__(self) -> None:
        self._sources: dict[str, RecordSource] = {}
        self._factories: dict[str, Callable[[], RecordSource]] = {}

    def register(self, source: RecordSource) -> RecordSource:
        self._sources[normalize_source_url(source.url)] = source
        return source

    def register_factory(self, url: str, factory: Callable[[], RecordSource]) -> None:
        """Register a lazily-built source (e.g. one that opens a connection)."""
        self._factories[normalize_source_url(url)] = factory

    def connect(self, url: str) -> RecordSource:
        """
        Resolve ``url`` to a source.

        Raises:
            SourceUnavailableError: URL is blank or not registered
        """
        key = normalize_source_url(url)
        if not key:
            raise SourceUnavailableError("Empty source URL")
        if key in self._sources:
            return self._sources[key]
        if key in self._factories:
            source = self._factories[key]()
            self._sources[key] = source
            return source
        raise SourceUnavailableError(f"Source not registered: {url}").with_context(source_url=url)

    def list_urls(self) -> list[str]:
        return sorted(set(self._sources) | set(self._factories))

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and normalize_source_url(url) in set(self.list_urls())


__all__ = [
    "RecordSource",
    "SourceConnector",
    "SourceDescriptor",
    "read_source_urls",
    "write_source_urls",
    "normalize_source_url",
    "SourceRegistry",
]
