"""
Per-subject record cache and permanent id lookup caches.

Holds everything the aggregator has ever fetched so that switching time
windows or subjects never re-downloads known data. Caches are explicit,
injected services rather than module globals; a process-wide default
registry exists for callers that want shared state.

Manifesto:
    Pagination only walks backward from the oldest record seen so far,
    which is only correct if the cache is a superset of every view derived
    from it. The cache therefore never evicts and never shrinks on merge;
    the only way to drop data is an explicit ``clear``.

    - **Merge, never replace:** repeated pages deduplicate on ``id``
    - **Window-independent:** the cache is keyed by subject alone
    - **Explicit lifecycle:** ``CacheRegistry.clear_all()`` on source change

Architecture:
    ::

        CacheRegistry
        ├── records   : RecordCache            subject → [Record] newest first
        ├── content   : LookupCache[Record]    event id → content record
        └── profiles  : LookupCache[dict]      pubkey → profile metadata

        API: RecordCache.get(subject) → [Record]
             RecordCache.merge(subject, records) → [Record]
             LookupCache.get_many(ids) → (found, missing)
             CacheRegistry.clear_all()

Guardrails:
    ❌ DON'T: Merge the same subject from two concurrent tasks
    ✅ DO: Let the single in-flight fetch cycle per subject do the writes

Tags:
    cache, caching, in-memory, records, zap-spine

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Generic, TypeVar

from zapspine.core.logging import get_logger
from zapspine.core.models import Record, Subject, sort_newest_first

logger = get_logger(__name__)

V = TypeVar("V")


class RecordCache:
    """All records ever fetched, partitioned by subject.

    Example:
        cache = RecordCache()
        cache.merge("pk", page_one)
        cache.merge("pk", page_two)      # overlapping ids collapse
        cache.get("pk")                  # newest first
    """

    def __init__(self) -> None:
        self._by_id: dict[Subject, dict[str, Record]] = {}
        self._sorted: dict[Subject, list[Record]] = {}

    def get(self, subject: Subject) -> list[Record]:
        """All known records for ``subject``, newest first (a copy)."""
        return list(self._sorted.get(subject, ()))

    def merge(self, subject: Subject, records: Iterable[Record]) -> list[Record]:
        """Add ``records`` to the subject's entry and return the merged view.

        A record whose id is already cached replaces the cached copy.
        """
        entry = self._by_id.setdefault(subject, {})
        before = len(entry)
        for record in records:
            entry[record.id] = record
        merged = sort_newest_first(entry.values())
        self._sorted[subject] = merged
        logger.debug(
            "cache.merged",
            subject=subject,
            added=len(entry) - before,
            total=len(merged),
        )
        return list(merged)

    def oldest_timestamp(self, subject: Subject) -> int | None:
        records = self._sorted.get(subject)
        if not records:
            return None
        return records[-1].created_at

    def size(self, subject: Subject) -> int:
        return len(self._by_id.get(subject, {}))

    def subjects(self) -> list[Subject]:
        return list(self._by_id)

    def clear(self) -> None:
        """Drop every subject's data."""
        self._by_id.clear()
        self._sorted.clear()


class LookupCache(Generic[V]):
    """Append-only id → value map that lives for the whole process.

    Writes are idempotent: re-writing an id with the same value is
    harmless, so concurrent lookups need no coordination.
    """

    def __init__(self, name: str = "lookup") -> None:
        self.name = name
        self._store: dict[str, V] = {}

    def get(self, key: str) -> V | None:
        return self._store.get(key)

    def get_many(self, keys: Iterable[str]) -> tuple[dict[str, V], list[str]]:
        """Split ``keys`` into cached values and ids still to fetch."""
        found: dict[str, V] = {}
        missing: list[str] = []
        seen: set[str] = set()
        for key in keys:
            if key in seen:
                continue
            seen.add(key)
            if key in self._store:
                found[key] = self._store[key]
            else:
                missing.append(key)
        return found, missing

    def put(self, key: str, value: V) -> None:
        self._store[key] = value

    def put_many(self, items: dict[str, V]) -> None:
        self._store.update(items)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()


class CacheRegistry:
    """The caches that must be cleared together when the primary source changes."""

    def __init__(
        self,
        records: RecordCache | None = None,
        content: LookupCache[Record] | None = None,
        profiles: LookupCache[dict] | None = None,
    ) -> None:
        self.records = records if records is not None else RecordCache()
        self.content: LookupCache[Record] = content if content is not None else LookupCache("content")
        self.profiles: LookupCache[dict] = profiles if profiles is not None else LookupCache("profiles")

    def clear_all(self) -> None:
        """Drop all cached data (subjects, content, profiles)."""
        logger.info(
            "cache.clear_all",
            subjects=len(self.records.subjects()),
            content=len(self.content),
            profiles=len(self.profiles),
        )
        self.records.clear()
        self.content.clear()
        self.profiles.clear()


_default_registry: CacheRegistry | None = None


def default_registry() -> CacheRegistry:
    """Process-wide registry for callers that share caches across services."""
    global _default_registry
    if _default_registry is None:
        _default_registry = CacheRegistry()
    return _default_registry


def clear_all() -> None:
    """Clear the process-wide registry; call when the primary source changes."""
    default_registry().clear_all()


__all__ = [
    "RecordCache",
    "LookupCache",
    "CacheRegistry",
    "default_registry",
    "clear_all",
]
