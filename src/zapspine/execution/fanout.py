"""Fan-out query executor: one logical query, N parallel physical queries.

WHY
───
Records about a subject are scattered over several partially-overlapping
sources. Asking only the primary misses data; asking them one after the
other multiplies latency. The executor asks every source at once, bounds
them all by one shared deadline, and merges what comes back.

ARCHITECTURE
────────────
::

    FanoutExecutor.query(filters, extra_urls)
      ├── primary.query(filters)            ┐
      ├── connector(url_1).query(filters)   ├─ asyncio.gather, one shared
      ├── connector(url_2).query(filters)   │  deadline (asyncio.timeout_at)
      └── ...                               ┘
              │ each wrapped: error / timeout / bad source → []
              ▼
      merge by id (source order, later duplicate wins) → FanoutResult

A failed source never fails the call; partial results are success. The
caller decides what "every source failed" means (see ``FanoutResult.failure``).

Related modules:
    loader.py   — drives repeated fan-outs for the pagination loop
    lookups.py  — chunked id lookups on top of the same executor

Example::

    executor = FanoutExecutor(primary, registry.connect, timeout=8.0)
    result = await executor.query([flt], ["wss://relay.two", "wss://relay.three"])
    print(len(result.records), result.sources_failed)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from zapspine.core.errors import (
    AllSourcesFailedError,
    QueryTimeoutError,
    RecordValidationError,
    SourceUnavailableError,
    ZapSpineError,
    error_message,
)
from zapspine.core.logging import get_logger
from zapspine.core.models import QueryFilter, Record
from zapspine.framework.sources.protocol import RecordSource, SourceConnector

logger = get_logger(__name__)

@dataclass
class SourceOutcome:
    """What one source contributed to a fan-out."""

    url: str
    records: list[Record] = field(default_factory=list)
    error: str | None = None
    timed_out: bool = False
    primary: bool = False
    duration_seconds: float = 0.0

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class FanoutResult:
    """Merged, deduplicated result of one fan-out. Order is unspecified."""

    records: list[Record]
    outcomes: list[SourceOutcome]

    @property
    def sources_queried(self) -> int:
        return len(self.outcomes)

    @property
    def sources_failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and self.sources_failed == len(self.outcomes)

    @property
    def errors(self) -> dict[str, str]:
        return {o.url: o.error for o in self.outcomes if o.error is not None}

    def failure(self) -> ZapSpineError | None:
        """The error a caller should raise when every source failed, else None.

        A fan-out where every source hit the deadline is a timeout;
        anything else is reported as an all-sources failure.
        """
        if not self.all_failed:
            return None
        if all(o.timed_out for o in self.outcomes):
            return QueryTimeoutError(f"All {self.sources_queried} sources timed out").with_context(
                errors=self.errors
            )
        return AllSourcesFailedError(
            f"All {self.sources_queried} sources failed",
            failures=self.sources_failed,
        ).with_context(errors=self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / CLI output."""
        return {
            "records": len(self.records),
            "sources_queried": self.sources_queried,
            "sources_failed": self.sources_failed,
            "outcomes": [
                {
                    "url": o.url,
                    "primary": o.primary,
                    "records": len(o.records),
                    "error": o.error,
                    "duration_seconds": round(o.duration_seconds, 3),
                }
                for o in self.outcomes
            ],
        }


def merge_records(batches: Iterable[Iterable[Record]]) -> list[Record]:
    """Merge batches by id. Iterates in order; a later duplicate replaces an earlier one."""
    by_id: dict[str, Record] = {}
    for batch in batches:
        for record in batch:
            by_id[record.id] = record
    return list(by_id.values())


def _coerce_records(raw: Any, url: str) -> list[Record]:
    """Accept ``Record`` objects or wire dicts; drop malformed entries."""
    if raw is None:
        raise SourceUnavailableError("Source returned no result").with_context(source_url=url)
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        raise SourceUnavailableError(
            f"Source returned {type(raw).__name__}, expected a list of records"
        ).with_context(source_url=url)

    records: list[Record] = []
    dropped = 0
    for item in raw:
        if isinstance(item, Record):
            records.append(item)
        elif isinstance(item, Mapping):
            try:
                records.append(Record.from_dict(item))
            except RecordValidationError:
                dropped += 1
        else:
            dropped += 1
    if dropped:
        logger.debug("fanout.records_dropped", url=url, dropped=dropped)
    return records


class FanoutExecutor:
    """Parallel query across a primary source and extra sources.

    Parameters
    ----------
    primary : RecordSource
        Always queried.
    connector : SourceConnector | None
        Resolves extra source URLs. A connector that raises makes that
        source contribute nothing. ``None`` disables extra sources.
    timeout : float
        Default shared deadline in seconds.
    """

    def __init__(
        self,
        primary: RecordSource,
        connector: SourceConnector | None = None,
        *,
        timeout: float = 8.0,
    ) -> None:
        self.primary = primary
        self.connector = connector
        self.timeout = timeout

    async def query(
        self,
        filters: Sequence[QueryFilter],
        extra_urls: Iterable[str] = (),
        *,
        timeout: float | None = None,
    ) -> FanoutResult:
        """Run ``filters`` against every source and merge the results.

        Returns once every sub-query has settled (answered, failed or hit
        the deadline). Caller cancellation propagates.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.timeout if timeout is None else timeout)

        urls: list[str] = []
        for url in extra_urls:
            if url != self.primary.url and url not in urls:
                urls.append(url)

        started = time.monotonic()
        outcomes = await asyncio.gather(
            self._query_one(self.primary.url, filters, deadline, primary=True),
            *[self._query_one(url, filters, deadline) for url in urls],
        )

        result = FanoutResult(
            records=merge_records(o.records for o in outcomes),
            outcomes=list(outcomes),
        )
        logger.debug(
            "fanout.complete",
            sources=result.sources_queried,
            failed=result.sources_failed,
            records=len(result.records),
            duration_seconds=round(time.monotonic() - started, 3),
        )
        return result

    async def _query_one(
        self,
        url: str,
        filters: Sequence[QueryFilter],
        deadline: float,
        *,
        primary: bool = False,
    ) -> SourceOutcome:
        started = time.monotonic()
        outcome = SourceOutcome(url=url, primary=primary)
        try:
            source = self.primary if primary else self._resolve(url)
            async with asyncio.timeout_at(deadline):
                raw = await source.query(filters)
            outcome.records = _coerce_records(raw, url)
        except TimeoutError:
            outcome.error = "Query timed out"
            outcome.timed_out = True
            logger.warning("fanout.source_timeout", url=url)
        except Exception as e:
            outcome.error = error_message(e)
            logger.warning("fanout.source_failed", url=url, error=outcome.error)
        outcome.duration_seconds = time.monotonic() - started
        return outcome

    def _resolve(self, url: str) -> RecordSource:
        if self.connector is None:
            raise SourceUnavailableError("No connector configured for extra sources").with_context(
                source_url=url
            )
        return self.connector(url)


__all__ = [
    "SourceOutcome",
    "FanoutResult",
    "FanoutExecutor",
    "merge_records",
]
