"""
CLI: ``jobspine worker`` - run an engine for a list of job definitions.
"""

from __future__ import annotations

import threading

import typer

from jobspine.cli.utils import console, err_console, get_settings, load_object
from jobspine.errors import ConfigurationError
from jobspine.logging import configure_logging

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    jobs: str = typer.Argument(..., help="Job definitions to load, as MODULE:ATTRIBUTE"),
    name: str = typer.Option("jobspine", "--name", "-n", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", "-r", help="Redis URL (default: JOBSPINE_REDIS_URL)"),
    schedule: bool = typer.Option(True, "--schedule/--no-schedule", help="Also fire recurring schedules"),
) -> None:
    """Process jobs until interrupted.

    Example::

        jobspine worker start myapp.jobs:configuration --name bgjobs
        jobspine worker start myapp.jobs:configuration --no-schedule
    """
    from jobspine.engine import JobEngine

    definitions = load_object(jobs)
    settings = get_settings(redis_url)
    configure_logging(level=settings.log_level, format=settings.log_format)

    try:
        engine = JobEngine(name=name, connection=settings.redis_url, jobs=definitions, settings=settings)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error: {e.message}[/red]")
        raise typer.Exit(code=1) from e

    console.print(
        f"[bold green]Starting jobspine worker[/bold green] "
        f"(queue={name}, jobs={len(engine.registry)}, schedule={schedule})"
    )
    engine.process()
    if schedule:
        engine.schedule()

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        console.print("\n[yellow]Worker stopped by user[/yellow]")
    finally:
        engine.close()
