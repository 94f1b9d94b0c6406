"""Scheduled post repository - CRUD and due-post selection.

Manifesto:
    Persistence of scheduled posts is a pure data concern. Keeping it in
    a repository over the synchronous ``Connection`` protocol lets the
    worker be tested with an in-memory sqlite database and keeps the
    worker focused on transport.

Tags:
    zap-spine, delivery, repository, CRUD, sqlite

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────┐
│  ScheduledPostRepository                                              │
│                                                                       │
│   ensure_schema()                                                     │
│   create(request) → ScheduledPost                                     │
│   get(id) → ScheduledPost | None                                      │
│   list_for_user(user_pubkey, status=None) → list[ScheduledPost]       │
│   due(now, limit) → list[ScheduledPost]   pending, oldest first       │
│   reschedule(id, when) → ScheduledPost | None                         │
│   mark_published(id, error_message=None)                              │
│   mark_failed(id, error_message)                                      │
│   stats(user_pubkey) → ScheduledPostStats                             │
│   delete(id) → bool                                                   │
└──────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import uuid4

from zapspine.core.logging import get_logger
from zapspine.core.protocols import Connection
from zapspine.delivery.models import (
    PostStatus,
    ScheduledPost,
    ScheduledPostCreate,
    ScheduledPostStats,
    to_iso,
    utc_now,
)

logger = get_logger(__name__)

TABLE = "scheduled_posts"

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id TEXT PRIMARY KEY,
    user_pubkey TEXT NOT NULL,
    kind INTEGER NOT NULL,
    signed_event TEXT,
    relays TEXT NOT NULL,
    scheduled_for TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'published', 'failed')),
    created_at TEXT NOT NULL,
    published_at TEXT,
    error_message TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_scheduled_posts_scheduled_for_status
    ON {TABLE}(scheduled_for, status);
CREATE INDEX IF NOT EXISTS idx_scheduled_posts_user_status
    ON {TABLE}(user_pubkey, status);
"""

COLUMNS = [
    "id",
    "user_pubkey",
    "kind",
    "signed_event",
    "relays",
    "scheduled_for",
    "status",
    "created_at",
    "published_at",
    "error_message",
    "retry_count",
]

_SELECT = f"SELECT {', '.join(COLUMNS)} FROM {TABLE}"


class ScheduledPostRepository:
    """Repository for scheduled posts.

    Example:
        >>> import sqlite3
        >>> repo = ScheduledPostRepository(sqlite3.connect(":memory:"))
        >>> repo.ensure_schema()
        >>> repo.stats("pk").total
        0
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def ensure_schema(self) -> None:
        for statement in SCHEMA.split(";"):
            if statement.strip():
                self.conn.execute(statement)
        self.conn.commit()

    # === CRUD Operations ===

    def create(self, request: ScheduledPostCreate) -> ScheduledPost:
        """Store a new pending post."""
        post_id = str(uuid4())
        kind = request.kind if request.kind is not None else int(request.signed_event.get("kind", 1))
        self.conn.execute(
            f"""
            INSERT INTO {TABLE} (
                id, user_pubkey, kind, signed_event, relays,
                scheduled_for, status, created_at, retry_count
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
            """,
            (
                post_id,
                request.user_pubkey,
                kind,
                json.dumps(request.signed_event),
                json.dumps(list(request.relays)),
                to_iso(request.scheduled_for),
                PostStatus.PENDING.value,
                to_iso(utc_now()),
            ),
        )
        self.conn.commit()
        logger.info("delivery.post_scheduled", post_id=post_id, kind=kind, relays=len(request.relays))
        return self.get(post_id)  # type: ignore[return-value]

    def get(self, post_id: str) -> ScheduledPost | None:
        cursor = self.conn.execute(f"{_SELECT} WHERE id = ?", (post_id,))
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_post(row)

    def list_for_user(self, user_pubkey: str, status: PostStatus | str | None = None) -> list[ScheduledPost]:
        """A user's posts, soonest first, optionally filtered by status."""
        sql = f"{_SELECT} WHERE user_pubkey = ?"
        params: list[Any] = [user_pubkey]
        if status is not None:
            sql += " AND status = ?"
            params.append(PostStatus(status).value)
        sql += " ORDER BY scheduled_for"
        cursor = self.conn.execute(sql, tuple(params))
        return [self._row_to_post(row) for row in cursor.fetchall()]

    def due(self, now: datetime, limit: int = 25) -> list[ScheduledPost]:
        """Pending posts scheduled at or before ``now``, oldest first."""
        cursor = self.conn.execute(
            f"""
            {_SELECT}
            WHERE status = ? AND scheduled_for <= ?
            ORDER BY scheduled_for
            LIMIT ?
            """,
            (PostStatus.PENDING.value, to_iso(now), limit),
        )
        return [self._row_to_post(row) for row in cursor.fetchall()]

    def reschedule(self, post_id: str, when: datetime) -> ScheduledPost | None:
        """Move a post to a new time and make it pending again."""
        cursor = self.conn.execute(
            f"UPDATE {TABLE} SET scheduled_for = ?, status = ?, error_message = NULL WHERE id = ?",
            (to_iso(when), PostStatus.PENDING.value, post_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            return None
        return self.get(post_id)

    def mark_published(self, post_id: str, error_message: str | None = None, *, now: datetime | None = None) -> None:
        """Mark published; ``error_message`` records a partial failure."""
        self.conn.execute(
            f"UPDATE {TABLE} SET status = ?, published_at = ?, error_message = ? WHERE id = ?",
            (PostStatus.PUBLISHED.value, to_iso(now or utc_now()), error_message, post_id),
        )
        self.conn.commit()

    def mark_failed(self, post_id: str, error_message: str) -> None:
        self.conn.execute(
            f"""
            UPDATE {TABLE}
            SET status = ?, error_message = ?, retry_count = retry_count + 1
            WHERE id = ?
            """,
            (PostStatus.FAILED.value, error_message, post_id),
        )
        self.conn.commit()

    def stats(self, user_pubkey: str) -> ScheduledPostStats:
        cursor = self.conn.execute(
            f"SELECT status, COUNT(*) FROM {TABLE} WHERE user_pubkey = ? GROUP BY status",
            (user_pubkey,),
        )
        stats = ScheduledPostStats()
        for status, count in cursor.fetchall():
            if status in (s.value for s in PostStatus):
                setattr(stats, status, int(count))
        return stats

    def delete(self, post_id: str) -> bool:
        cursor = self.conn.execute(f"DELETE FROM {TABLE} WHERE id = ?", (post_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def _row_to_post(self, row: tuple) -> ScheduledPost:
        """Convert database row to ScheduledPost model."""
        data = dict(zip(COLUMNS, row, strict=False))
        data["signed_event"] = _load_json(data["signed_event"])
        relays = _load_json(data["relays"])
        data["relays"] = [str(r) for r in relays] if isinstance(relays, list) else []
        return ScheduledPost(**data)


def _load_json(raw: Any) -> Any:
    """Decode a JSON column; undecodable text is returned unchanged."""
    if raw is None or not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


__all__ = ["ScheduledPostRepository", "SCHEMA", "TABLE", "COLUMNS"]
