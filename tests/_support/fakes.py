"""
Test doubles and record builders.

- ``make_receipt`` / ``make_note`` / ``make_profile`` build records
- ``StaticSource`` answers filters from a fixed list (optionally capped)
- ``FailingSource`` always raises, ``SlowSource`` answers late
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import Any

from zapspine.core.models import QueryFilter, Record, sort_newest_first

SUBJECT = "a" * 64
ZAPPER = "b" * 64
NOW = 1_700_000_000


# =============================================================================
# Record builders
# =============================================================================


def make_receipt(
    record_id: str,
    created_at: int,
    *,
    amount_sats: int = 21,
    recipient: str = SUBJECT,
    zapper: str = ZAPPER,
    event_id: str | None = None,
    address: str | None = None,
    kind_hint: int | None = None,
    comment: str = "",
    bolt11: str | None = None,
) -> Record:
    """Zap receipt (kind 9735) paying ``amount_sats`` to ``recipient``."""
    request = {
        "kind": 9734,
        "pubkey": zapper,
        "content": comment,
        "tags": [["p", recipient], ["amount", str(amount_sats * 1000)]],
    }
    tags: list[list[str]] = [
        ["p", recipient],
        ["bolt11", bolt11 if bolt11 is not None else f"lnbc{amount_sats * 10}n1pjtest"],
        ["description", json.dumps(request)],
    ]
    if event_id is not None:
        tags.append(["e", event_id])
    if address is not None:
        tags.append(["a", address])
    if kind_hint is not None:
        tags.append(["k", str(kind_hint)])
    return Record.from_dict(
        {
            "id": record_id,
            "pubkey": "c" * 64,
            "created_at": created_at,
            "kind": 9735,
            "tags": tags,
            "content": "",
            "sig": "",
        }
    )


def make_note(record_id: str, created_at: int, *, author: str = SUBJECT, content: str = "hello", tags=()) -> Record:
    return Record(
        id=record_id,
        pubkey=author,
        created_at=created_at,
        kind=1,
        tags=tuple(tuple(t) for t in tags),
        content=content,
    )


def make_profile(pubkey: str, created_at: int, **metadata: Any) -> Record:
    return Record(
        id=f"profile-{pubkey[:8]}-{created_at}",
        pubkey=pubkey,
        created_at=created_at,
        kind=0,
        content=json.dumps(metadata),
    )


# =============================================================================
# Fake sources
# =============================================================================


class StaticSource:
    """Evaluates filters against a fixed record list, newest first.

    ``cap`` imitates a source's silent per-query result limit.
    """

    def __init__(self, records: Sequence[Record] = (), *, url: str = "wss://static.test", cap: int | None = None):
        self._url = url
        self.records = sort_newest_first(records)
        self.cap = cap
        self.queries: list[list[QueryFilter]] = []

    @property
    def url(self) -> str:
        return self._url

    async def query(self, filters: Sequence[QueryFilter]) -> list[Record]:
        self.queries.append(list(filters))
        result: dict[str, Record] = {}
        for flt in filters:
            limit = flt.limit
            if self.cap is not None:
                limit = self.cap if limit is None else min(limit, self.cap)
            matched = [r for r in self.records if flt.matches(r)]
            if limit is not None:
                matched = matched[:limit]
            for record in matched:
                result[record.id] = record
        return sort_newest_first(result.values())


class FailingSource:
    def __init__(self, url: str = "wss://failing.test", error: Exception | None = None):
        self._url = url
        self.error = error or ConnectionError("connection refused")
        self.calls = 0

    @property
    def url(self) -> str:
        return self._url

    async def query(self, filters: Sequence[QueryFilter]) -> list[Record]:
        self.calls += 1
        raise self.error


class SlowSource:
    """Sleeps ``delay`` seconds before answering with ``records``."""

    def __init__(self, records: Sequence[Record] = (), *, url: str = "wss://slow.test", delay: float = 10.0):
        self._url = url
        self.records = list(records)
        self.delay = delay
        self.started = asyncio.Event()
        self.cancelled = False

    @property
    def url(self) -> str:
        return self._url

    async def query(self, filters: Sequence[QueryFilter]) -> list[Record]:
        self.started.set()
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return [r for r in self.records if any(f.matches(r) for f in filters)]



class GatedSource(StaticSource):
    """``StaticSource`` whose answers are held until ``release()``."""

    def __init__(self, records: Sequence[Record] = (), *, url: str = "wss://gated.test", cap: int | None = None):
        super().__init__(records, url=url, cap=cap)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    def release(self) -> None:
        self.gate.set()

    async def query(self, filters: Sequence[QueryFilter]) -> list[Record]:
        self.started.set()
        await self.gate.wait()
        return await super().query(filters)
