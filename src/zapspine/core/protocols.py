"""Database protocols for the delivery repository.

``ScheduledPostRepository`` only needs parameterised statements, a cursor
it can read rows and ``rowcount`` from, and ``commit``. ``sqlite3`` fits
natively; any DB-API adapter with ``?`` placeholders does too.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Cursor(Protocol):
    """Result of ``Connection.execute``."""

    rowcount: int

    def fetchone(self) -> tuple | None: ...

    def fetchall(self) -> list[tuple]: ...


@runtime_checkable
class Connection(Protocol):
    """
    Synchronous connection used by the repositories.

    ::

        execute(sql, params) → Cursor     one statement, ``?`` placeholders
        commit()                          make the write durable
    """

    def execute(self, sql: str, params: tuple = ()) -> Cursor:
        ...

    def commit(self) -> None:
        ...


__all__ = ["Cursor", "Connection"]
