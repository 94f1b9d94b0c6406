"""
File-backed record source.

Serves queries from a local dump of records, evaluating each
``QueryFilter`` in memory. Useful for offline analysis of relay exports
and for reproducing a relay's silent result cap (``limit_cap``).

Supports:
- JSON (array of record objects)
- JSONL / NDJSON (one record object per line)

Usage:
    from zapspine.framework.sources.file import FileRecordSource

    source = FileRecordSource("wss://relay.example", "/dumps/relay.jsonl", limit_cap=500)
    records = await source.query([QueryFilter.build(kinds=[9735], limit=1000)])
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Any

from zapspine.core.errors import ParseError, RecordValidationError, SourceUnavailableError
from zapspine.core.logging import get_logger
from zapspine.core.models import QueryFilter, Record, sort_newest_first

logger = get_logger(__name__)


class FileFormat(str, Enum):
    """Supported dump formats."""

    JSON = "json"
    JSONL = "jsonl"


EXTENSION_MAP = {
    ".json": FileFormat.JSON,
    ".jsonl": FileFormat.JSONL,
    ".ndjson": FileFormat.JSONL,
}


class FileRecordSource:
    """
    Record source reading a JSON or JSONL dump.

    The file is read once, on first query. Entries that fail record
    validation are skipped and counted in ``rejected``.
    """

    def __init__(
        self,
        url: str,
        path: str | Path,
        *,
        format: FileFormat | str | None = None,
        limit_cap: int | None = None,
        encoding: str = "utf-8",
    ):
        self._url = url
        self.path = Path(path)
        self.format = FileFormat(format) if format else self._detect_format()
        self.limit_cap = limit_cap
        self.encoding = encoding
        self.rejected = 0
        self._records: list[Record] | None = None

    @property
    def url(self) -> str:
        return self._url

    def _detect_format(self) -> FileFormat:
        fmt = EXTENSION_MAP.get(self.path.suffix.lower())
        if fmt is None:
            raise SourceUnavailableError(
                f"Cannot detect dump format from extension: {self.path.suffix!r}"
            ).with_context(source_url=self._url)
        return fmt

    def _read_entries(self) -> list[Any]:
        try:
            text = self.path.read_text(encoding=self.encoding)
        except OSError as e:
            raise SourceUnavailableError(f"Cannot read {self.path}", cause=e).with_context(
                source_url=self._url
            )

        try:
            if self.format == FileFormat.JSON:
                data = json.loads(text)
                if isinstance(data, dict):
                    data = data.get("records") or data.get("events") or []
                if not isinstance(data, list):
                    raise ParseError(f"{self.path} does not contain a JSON array")
                return data
            return [json.loads(line) for line in text.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise ParseError(f"Invalid JSON in {self.path}: {e}", cause=e).with_context(
                source_url=self._url
            )

    def load(self) -> list[Record]:
        """Read and validate the dump (cached after the first call)."""
        if self._records is not None:
            return self._records

        records: list[Record] = []
        self.rejected = 0
        for entry in self._read_entries():
            try:
                records.append(Record.from_dict(entry))
            except RecordValidationError:
                self.rejected += 1

        self._records = sort_newest_first(records)
        logger.info(
            "file_source.loaded",
            url=self._url,
            path=str(self.path),
            records=len(records),
            rejected=self.rejected,
        )
        return self._records

    async def query(self, filters: Sequence[QueryFilter]) -> list[Record]:
        records = self.load()
        result: dict[str, Record] = {}
        for flt in filters:
            limit = flt.limit
            if self.limit_cap is not None:
                limit = self.limit_cap if limit is None else min(limit, self.limit_cap)
            matched = 0
            for record in records:
                if limit is not None and matched >= limit:
                    break
                if flt.matches(record):
                    result[record.id] = record
                    matched += 1
        return sort_newest_first(result.values())


__all__ = ["FileFormat", "FileRecordSource", "EXTENSION_MAP"]
