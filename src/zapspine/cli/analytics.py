"""
Analytics commands — run the pagination loop over dump files and report.

Sources are local JSON/JSONL dumps; ``--limit-cap`` reproduces a relay's
silent per-query cap so batch-limit detection can be observed offline.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import typer

from zapspine.analytics.report import AnalyticsReport
from zapspine.analytics.service import ZapAnalyticsService
from zapspine.cli.utils import console, fail, print_dict, print_json, print_table
from zapspine.core.cache import CacheRegistry
from zapspine.core.settings import ZapSpineSettings, get_settings
from zapspine.core.windows import CUSTOM, PRESET_SPANS, CustomRange
from zapspine.execution.fanout import FanoutExecutor
from zapspine.framework.sources import FileRecordSource, SourceRegistry

app = typer.Typer(no_args_is_help=True)


def _file_source(path: Path, limit_cap: int | None) -> FileRecordSource:
    return FileRecordSource(f"file://{path.resolve()}", path, limit_cap=limit_cap)


def _cli_settings() -> ZapSpineSettings:
    """Environment settings with the interactive pauses removed."""
    return get_settings().model_copy(
        update={"batch_delay_ms": 0, "auto_load_delay_ms": 0, "custom_range_delay_ms": 0}
    )


async def _collect(
    subject: str,
    primary: Path,
    extras: list[Path],
    range_name: str,
    custom: CustomRange | None,
    limit_cap: int | None,
) -> tuple[AnalyticsReport, str | None]:
    registry = SourceRegistry()
    extra_urls = [registry.register(_file_source(p, limit_cap)).url for p in extras]
    executor = FanoutExecutor(_file_source(primary, limit_cap), registry.connect)
    service = ZapAnalyticsService(executor, CacheRegistry(), _cli_settings(), extra_urls=extra_urls)
    try:
        await service.activate(subject, range_name, custom)
        await service.wait_idle()
        return await service.report(), service.config_error
    finally:
        await service.close()


def _print_report(report: AnalyticsReport) -> None:
    print_dict(
        {
            "period": report.period,
            "total_sats": report.total_sats,
            "total_zaps": report.total_zaps,
            "unique_zappers": report.unique_zappers,
            "batches": report.loading.get("current_batch"),
            "detected_limit": report.loading.get("detected_limit"),
            "complete": report.loading.get("is_complete"),
        },
        title="Zap analytics",
    )
    if report.loading.get("error"):
        console.print(f"[yellow]Last error:[/yellow] {report.loading['error']}")
    print_table(report.earnings_by_period, title="Earnings by period", columns=["label", "total_sats", "zap_count"])
    print_table(
        report.top_zappers, title="Top zappers", columns=["pubkey", "name", "total_sats", "zap_count"]
    )
    print_table(
        report.earnings_by_kind,
        title="Earnings by kind",
        columns=["kind_name", "total_sats", "zap_count", "percentage"],
    )
    print_table(report.top_content, title="Top content", columns=["event_id", "preview", "total_sats", "zap_count"])
    loyalty = report.loyalty
    print_dict(
        {
            "new": loyalty.new_zappers,
            "returning": loyalty.returning_zappers,
            "regular": loyalty.regular_supporters,
            "average_lifetime_value": loyalty.average_lifetime_value,
        },
        title="Loyalty",
    )


@app.command("report")
def report_cmd(
    subject: str = typer.Argument(..., help="Recipient public key (hex)."),
    primary: Path = typer.Option(..., "--primary", "-p", exists=True, dir_okay=False, help="Primary source dump."),
    extra: list[Path] = typer.Option(
        [], "--extra", "-e", exists=True, dir_okay=False, help="Additional source dump (repeatable)."
    ),
    range_name: str = typer.Option("7d", "--range", "-r", help=f"One of {', '.join(PRESET_SPANS)}, custom."),
    start: datetime | None = typer.Option(None, "--from", formats=["%Y-%m-%d"], help="Custom range start date."),
    end: datetime | None = typer.Option(None, "--to", formats=["%Y-%m-%d"], help="Custom range end date."),
    limit_cap: int | None = typer.Option(None, "--limit-cap", min=1, help="Cap results per query."),
    include_zaps: bool = typer.Option(False, "--zaps", help="Include individual zaps in JSON output."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Load zap receipts for SUBJECT and print the analytics report."""
    custom = None
    if start is not None or end is not None:
        range_name = CUSTOM
        custom = CustomRange(
            start=start.date() if start else None,
            end=end.date() if end else None,
        )

    report, config_error = asyncio.run(_collect(subject, primary, list(extra), range_name, custom, limit_cap))
    if config_error is not None:
        fail(config_error)

    if as_json:
        print_json(report.to_dict(include_zaps=include_zaps))
    else:
        _print_report(report)


@app.command("zaps")
def zaps_cmd(
    subject: str = typer.Argument(..., help="Recipient public key (hex)."),
    primary: Path = typer.Option(..., "--primary", "-p", exists=True, dir_okay=False, help="Primary source dump."),
    extra: list[Path] = typer.Option(
        [], "--extra", "-e", exists=True, dir_okay=False, help="Additional source dump (repeatable)."
    ),
    range_name: str = typer.Option("7d", "--range", "-r", help="Preset time range."),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum zaps to show."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List the newest parsed zaps for SUBJECT."""
    report, config_error = asyncio.run(_collect(subject, primary, list(extra), range_name, None, None))
    if config_error is not None:
        fail(config_error)

    zaps = sorted(report.zaps, key=lambda z: z.created_at, reverse=True)[:limit]
    if as_json:
        print_json([z.to_dict() for z in zaps])
        return
    rows = [
        {
            "id": z.id,
            "amount": z.amount,
            "zapper": z.zapper.name or z.zapper.pubkey,
            "created_at": z.created_at,
            "comment": z.comment,
        }
        for z in zaps
    ]
    print_table(rows, title="Zaps")
