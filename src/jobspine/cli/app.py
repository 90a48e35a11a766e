"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from jobspine.cli.monitor import monitor, stats
from jobspine.cli.run import run
from jobspine.cli.worker import app as worker_app

app = Typer(
    name="jobspine",
    help="jobspine - background jobs with deadlines, schedules and live monitoring.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from jobspine import __version__

        typer.echo(f"jobspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobspine CLI - run jobs, monitor queues and start workers."""


# ── Sub-command registration ─────────────────────────────────────────────

app.command("monitor", help="Live monitoring dashboard.")(monitor)
app.command("stats", help="Print one monitoring snapshot.")(stats)
app.command("run", help="Execute a job inline or queue it.")(run)
app.add_typer(worker_app, name="worker", help="Background job worker.")
