"""
Delivery commands — schedule, inspect and publish pre-signed posts.

``run`` performs one worker pass with the dry-run publisher, which
accepts every relay except those passed with ``--reject``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path

import typer

from zapspine.cli.utils import console, fail, get_connection, print_dict, print_json, print_table
from zapspine.core.settings import get_settings
from zapspine.delivery import (
    DeliveryWorker,
    DryRunPublisher,
    PostStatus,
    ScheduledPostCreate,
    ScheduledPostRepository,
    time_remaining,
)

app = typer.Typer(no_args_is_help=True)


def _repo(database: str | None) -> ScheduledPostRepository:
    repo = ScheduledPostRepository(get_connection(database))
    repo.ensure_schema()
    return repo


def _parse_when(value: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        fail(f"Invalid ISO timestamp: {value}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


@app.command("schedule")
def schedule_cmd(
    event_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Signed event JSON file."),
    user: str = typer.Option(..., "--user", "-u", help="Owner public key."),
    relay: list[str] = typer.Option(..., "--relay", "-r", help="Target relay URL (repeatable)."),
    at: str = typer.Option(..., "--at", help="Publication time (ISO 8601, UTC if no offset)."),
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database path."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Schedule a signed event for publication."""
    try:
        event = json.loads(event_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        fail(f"Invalid event JSON: {e}")
    if not isinstance(event, dict):
        fail("Event file must contain a JSON object")

    post = _repo(database).create(
        ScheduledPostCreate(
            user_pubkey=user,
            signed_event=event,
            relays=list(relay),
            scheduled_for=_parse_when(at),
        )
    )
    if as_json:
        print_json(post.to_dict())
    else:
        remaining = time_remaining(post.scheduled_datetime)
        console.print(f"[green]✓[/green] Scheduled {post.id} ({remaining.text})")


@app.command("list")
def list_cmd(
    user: str = typer.Argument(..., help="Owner public key."),
    status: PostStatus | None = typer.Option(None, "--status", "-s", help="Filter by status."),
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database path."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List a user's scheduled posts."""
    posts = _repo(database).list_for_user(user, status)
    if as_json:
        print_json([p.to_dict() for p in posts])
        return
    print_table(
        posts,
        title="Scheduled posts",
        columns=["id", "kind", "scheduled_for", "status", "retry_count", "error_message"],
    )


@app.command("reschedule")
def reschedule_cmd(
    post_id: str = typer.Argument(..., help="Scheduled post ID."),
    at: str = typer.Option(..., "--at", help="New publication time (ISO 8601)."),
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database path."),
) -> None:
    """Move a post to a new time and mark it pending."""
    post = _repo(database).reschedule(post_id, _parse_when(at))
    if post is None:
        fail(f"Scheduled post not found: {post_id}")
    console.print(f"[green]✓[/green] Rescheduled {post_id} for {post.scheduled_for}")


@app.command("stats")
def stats_cmd(
    user: str = typer.Argument(..., help="Owner public key."),
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database path."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Count a user's posts by status."""
    stats = _repo(database).stats(user)
    data = {
        "pending": stats.pending,
        "published": stats.published,
        "failed": stats.failed,
        "total": stats.total,
    }
    if as_json:
        print_json(data)
    else:
        print_dict(data, title="Scheduled posts")


@app.command("run")
def run_cmd(
    database: str | None = typer.Option(None, "--database", "-d", help="SQLite database path."),
    reject: list[str] = typer.Option([], "--reject", help="Relay URL the dry-run publisher rejects."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Publish every due post once."""
    worker = DeliveryWorker(_repo(database), DryRunPublisher.rejecting(reject), get_settings())
    result = asyncio.run(worker.run_once())
    if as_json:
        print_json(result.to_dict())
        return
    console.print(
        f"Processed {result.total} post(s): "
        f"[green]{result.successful} published[/green], [red]{result.failed} failed[/red]"
    )
    print_table(result.results, title="Results")
