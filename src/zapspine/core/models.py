"""Record and query-filter models.

A ``Record`` is an immutable, signed unit of data returned by a source.
Identity is the ``id`` alone: two copies with the same id from different
sources are the same logical record.

A ``QueryFilter`` is the structured predicate sent to a source. It renders
to the wire shape with ``to_dict()`` and can be evaluated locally with
``matches()`` by sources that hold their data in memory.

Tags:
    zap-spine, models, dataclasses, records, filters

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from zapspine.core.errors import RecordValidationError

Subject = str
"""Cache partition key (a hex public key)."""


@dataclass(frozen=True)
class Record:
    """Immutable record as returned by a source."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...] = ()
    content: str = ""
    sig: str = ""

    @property
    def timestamp(self) -> int:
        return self.created_at

    def tag_value(self, name: str) -> str | None:
        """First value of the first tag called ``name``."""
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == name:
                return tag[1]
        return None

    def tag_values(self, name: str) -> list[str]:
        """First value of every tag called ``name``."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Record:
        """Build a record from its wire dict.

        Raises:
            RecordValidationError: required fields missing or mistyped
        """
        if not isinstance(data, Mapping):
            raise RecordValidationError(f"Record must be an object, got {type(data).__name__}")

        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise RecordValidationError("Record is missing 'id'")

        pubkey = data.get("pubkey")
        created_at = data.get("created_at")
        kind = data.get("kind")
        if not isinstance(pubkey, str) or not pubkey:
            raise RecordValidationError("Record is missing 'pubkey'").with_context(record_id=record_id)
        # bool is an int subclass; reject it explicitly
        if not isinstance(created_at, int) or isinstance(created_at, bool):
            raise RecordValidationError("Record 'created_at' must be an integer").with_context(record_id=record_id)
        if not isinstance(kind, int) or isinstance(kind, bool):
            raise RecordValidationError("Record 'kind' must be an integer").with_context(record_id=record_id)

        raw_tags = data.get("tags") or []
        if not isinstance(raw_tags, list):
            raise RecordValidationError("Record 'tags' must be a list").with_context(record_id=record_id)
        tags: list[tuple[str, ...]] = []
        for tag in raw_tags:
            if not isinstance(tag, (list, tuple)) or not all(isinstance(v, str) for v in tag):
                raise RecordValidationError("Record tags must be lists of strings").with_context(record_id=record_id)
            tags.append(tuple(tag))

        content = data.get("content", "")
        if not isinstance(content, str):
            raise RecordValidationError("Record 'content' must be a string").with_context(record_id=record_id)

        return cls(
            id=record_id,
            pubkey=pubkey,
            created_at=created_at,
            kind=kind,
            tags=tuple(tags),
            content=content,
            sig=str(data.get("sig", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }


@dataclass(frozen=True)
class QueryFilter:
    """Structured predicate over record fields.

    ``tags`` maps a single-letter tag name to accepted values and renders
    as ``"#<name>"`` on the wire.
    """

    ids: tuple[str, ...] | None = None
    authors: tuple[str, ...] | None = None
    kinds: tuple[int, ...] | None = None
    tags: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = None

    @classmethod
    def build(
        cls,
        *,
        ids: Iterable[str] | None = None,
        authors: Iterable[str] | None = None,
        kinds: Iterable[int] | None = None,
        tags: Mapping[str, Iterable[str]] | None = None,
        since: int | None = None,
        until: int | None = None,
        limit: int | None = None,
    ) -> QueryFilter:
        """Convenience constructor accepting any iterables."""
        return cls(
            ids=tuple(ids) if ids is not None else None,
            authors=tuple(authors) if authors is not None else None,
            kinds=tuple(kinds) if kinds is not None else None,
            tags={name: tuple(values) for name, values in (tags or {}).items()},
            since=since,
            until=until,
            limit=limit,
        )

    def to_dict(self) -> dict[str, Any]:
        """Wire representation; unset fields are omitted."""
        result: dict[str, Any] = {}
        if self.ids is not None:
            result["ids"] = list(self.ids)
        if self.authors is not None:
            result["authors"] = list(self.authors)
        if self.kinds is not None:
            result["kinds"] = list(self.kinds)
        for name, values in self.tags.items():
            result[f"#{name}"] = list(values)
        if self.since is not None:
            result["since"] = self.since
        if self.until is not None:
            result["until"] = self.until
        if self.limit is not None:
            result["limit"] = self.limit
        return result

    def matches(self, record: Record) -> bool:
        """Evaluate the predicate (ignoring ``limit``) against one record."""
        if self.ids is not None and record.id not in self.ids:
            return False
        if self.authors is not None and record.pubkey not in self.authors:
            return False
        if self.kinds is not None and record.kind not in self.kinds:
            return False
        if self.since is not None and record.created_at < self.since:
            return False
        if self.until is not None and record.created_at > self.until:
            return False
        for name, values in self.tags.items():
            if not set(record.tag_values(name)) & set(values):
                return False
        return True


def sort_newest_first(records: Iterable[Record]) -> list[Record]:
    """Sort by timestamp descending; ties broken by id for determinism."""
    return sorted(records, key=lambda r: (-r.created_at, r.id))


__all__ = ["Subject", "Record", "QueryFilter", "sort_newest_first"]
