"""Chunked id lookups with a permanent cache.

Analytics enriches receipts with two auxiliary lookups: the zapped
content records (by event id) and the zappers' profile metadata (by
pubkey). Both go through ``ChunkedLookup``::

    ids ──▶ LookupCache.get_many ──▶ (found, missing)
                                        │
              missing split into chunks of chunk_size
                                        │
              groups of max_concurrent chunks, asyncio.gather
              failed chunk → {}          sleep(batch_delay) between groups
                                        │
              results ──▶ LookupCache.put_many ──▶ found ∪ fetched

All chunks share one deadline. Lookups never raise for a source failure;
whatever could not be fetched is simply absent from the result.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

from zapspine.core.cache import LookupCache
from zapspine.core.logging import get_logger
from zapspine.core.models import QueryFilter, Record
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.execution.fanout import FanoutExecutor

logger = get_logger(__name__)

V = TypeVar("V")

PROFILE_KIND = 0

ChunkFetcher = Callable[[list[str]], Awaitable[dict[str, V]]]


def chunked(items: list[str], size: int) -> list[list[str]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    return [items[i : i + size] for i in range(0, len(items), size)]


class ChunkedLookup(Generic[V]):
    """Batch id lookup with bounded concurrency and a permanent cache."""

    def __init__(
        self,
        fetch_chunk: ChunkFetcher,
        cache: LookupCache[V],
        *,
        chunk_size: int,
        max_concurrent: int = 3,
        batch_delay: float = 0.05,
        timeout: float | None = None,
    ) -> None:
        self.fetch_chunk = fetch_chunk
        self.cache = cache
        self.chunk_size = chunk_size
        self.max_concurrent = max_concurrent
        self.batch_delay = batch_delay
        self.timeout = timeout

    async def lookup(self, ids: Iterable[str]) -> dict[str, V]:
        found, missing = self.cache.get_many(i for i in ids if i)
        if not missing:
            return found

        chunks = chunked(missing, self.chunk_size)
        deadline = None
        if self.timeout is not None:
            deadline = asyncio.get_running_loop().time() + self.timeout

        fetched: dict[str, V] = {}
        failed_chunks = 0
        for start in range(0, len(chunks), self.max_concurrent):
            group = chunks[start : start + self.max_concurrent]
            results = await asyncio.gather(*[self._fetch_one(chunk, deadline) for chunk in group])
            for result in results:
                if result is None:
                    failed_chunks += 1
                else:
                    fetched.update(result)
            if start + self.max_concurrent < len(chunks) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        self.cache.put_many(fetched)
        logger.debug(
            "lookup.complete",
            cache=self.cache.name,
            cached=len(found),
            requested=len(missing),
            fetched=len(fetched),
            chunks=len(chunks),
            failed_chunks=failed_chunks,
        )
        return {**found, **fetched}

    async def _fetch_one(self, chunk: list[str], deadline: float | None) -> dict[str, V] | None:
        try:
            if deadline is None:
                return await self.fetch_chunk(chunk)
            async with asyncio.timeout_at(deadline):
                return await self.fetch_chunk(chunk)
        except TimeoutError:
            logger.warning("lookup.chunk_timeout", cache=self.cache.name, size=len(chunk))
        except Exception as e:
            logger.warning("lookup.chunk_failed", cache=self.cache.name, size=len(chunk), error=str(e))
        return None


def content_lookup(
    executor: FanoutExecutor,
    cache: LookupCache[Record],
    settings: ZapSpineSettings | None = None,
    extra_urls: Iterable[str] = (),
) -> ChunkedLookup[Record]:
    """Lookup of zapped content records by event id."""
    settings = settings or get_settings()
    urls = list(extra_urls)
    timeout = settings.content_timeout_ms / 1000

    async def fetch(chunk: list[str]) -> dict[str, Record]:
        result = await executor.query([QueryFilter.build(ids=chunk)], urls, timeout=timeout)
        failure = result.failure()
        if failure is not None:
            raise failure
        wanted = set(chunk)
        return {r.id: r for r in result.records if r.id in wanted}

    return ChunkedLookup(
        fetch,
        cache,
        chunk_size=settings.content_chunk_size,
        max_concurrent=settings.lookup_max_concurrent,
        batch_delay=settings.lookup_batch_delay_ms / 1000,
        timeout=timeout,
    )


def decode_profile(record: Record) -> dict | None:
    """Profile metadata from a kind-0 record, or None when undecodable."""
    try:
        metadata = json.loads(record.content)
    except (json.JSONDecodeError, TypeError):
        return None
    return metadata if isinstance(metadata, dict) else None


def profile_lookup(
    executor: FanoutExecutor,
    cache: LookupCache[dict],
    settings: ZapSpineSettings | None = None,
    extra_urls: Iterable[str] = (),
) -> ChunkedLookup[dict]:
    """Lookup of profile metadata by pubkey (newest kind-0 record wins)."""
    settings = settings or get_settings()
    urls = list(extra_urls)
    timeout = settings.profile_timeout_ms / 1000

    async def fetch(chunk: list[str]) -> dict[str, dict]:
        result = await executor.query(
            [QueryFilter.build(kinds=[PROFILE_KIND], authors=chunk)], urls, timeout=timeout
        )
        failure = result.failure()
        if failure is not None:
            raise failure
        newest: dict[str, Record] = {}
        for record in result.records:
            if record.kind != PROFILE_KIND:
                continue
            current = newest.get(record.pubkey)
            if current is None or record.created_at > current.created_at:
                newest[record.pubkey] = record

        profiles: dict[str, dict] = {}
        for pubkey, record in newest.items():
            metadata = decode_profile(record)
            if metadata is None:
                logger.debug("lookup.profile_undecodable", pubkey=pubkey)
                continue
            profiles[pubkey] = metadata
        return profiles

    return ChunkedLookup(
        fetch,
        cache,
        chunk_size=settings.profile_chunk_size,
        max_concurrent=settings.lookup_max_concurrent,
        batch_delay=settings.lookup_batch_delay_ms / 1000,
        timeout=timeout,
    )


__all__ = [
    "PROFILE_KIND",
    "ChunkFetcher",
    "chunked",
    "ChunkedLookup",
    "content_lookup",
    "profile_lookup",
    "decode_profile",
]
