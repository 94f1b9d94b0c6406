"""
Root Typer application for the zap-spine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="zapspine",
    help="zap-spine — zap receipt analytics and scheduled delivery.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError, version as pkg_version

        from zapspine import __version__

        try:
            v = pkg_version("zap-spine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"zap-spine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Log level for diagnostics on stderr.",
        envvar="ZAPSPINE_LOG_LEVEL",
    ),
) -> None:
    """zap-spine CLI — analyse zap receipts and publish scheduled posts."""
    from zapspine.core.logging import configure_logging

    configure_logging(level=log_level, json_format=False, cache_loggers=False)


# ── Sub-command registration ─────────────────────────────────────────────

from zapspine.cli.analytics import app as analytics_app  # noqa: E402
from zapspine.cli.delivery import app as delivery_app  # noqa: E402

app.add_typer(analytics_app, name="analytics", help="Zap receipt analytics.")
app.add_typer(delivery_app, name="delivery", help="Scheduled post delivery.")


if __name__ == "__main__":
    app()
