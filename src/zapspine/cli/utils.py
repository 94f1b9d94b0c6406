"""
CLI utility helpers — output formatting and connection management.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(database: str | None = None) -> sqlite3.Connection:
    """Open the delivery database.  Defaults to ``~/.zapspine/zapspine.db``."""
    if database is None:
        path = Path.home() / ".zapspine" / "zapspine.db"
        path.parent.mkdir(parents=True, exist_ok=True)
        database = str(path)
    return sqlite3.connect(database)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / object with ``to_dict`` / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(items: list, *, title: str = "", columns: list[str] | None = None) -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    if not items:
        console.print(f"[dim]No {title.lower() or 'items'}.[/dim]")
        return
    rows = [_to_dict(item) for item in items]
    keys = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in keys:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(k) is None else str(row.get(k)) for k in keys))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def fail(message: str, code: int = 1) -> NoReturn:
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(code=code)
