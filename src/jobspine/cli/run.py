"""
CLI: ``jobspine run`` - execute one job inline or queue it for a worker.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import typer
from rich.markup import escape

from jobspine.cli.utils import console, err_console, get_settings, load_object
from jobspine.errors import ConfigurationError
from jobspine.execution.context import JobContext
from jobspine.execution.timeout import RaceResult, run_with_deadline
from jobspine.logging import configure_logging
from jobspine.models import ROUTING_FIELD, Job, JobState, Outcome

if TYPE_CHECKING:
    from jobspine.engine import JobEngine
    from jobspine.registry import JobDefinition

INLINE_JOB_ID = "cli"


def parse_data(value: str | None) -> dict[str, Any]:
    """Parse ``--data`` into a job payload.

    Raises:
        typer.BadParameter: If the value is not a JSON object.
    """
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--data is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise typer.BadParameter("--data must be a JSON object")
    return data


def run_inline(engine: JobEngine, definition: JobDefinition, data: dict[str, Any]) -> RaceResult:
    """Run a handler in this process, under its deadline, without the queue.

    The context's ``add`` and ``list`` still go to the engine's backing queue.
    """
    job = Job(
        id=INLINE_JOB_ID,
        name=definition.name,
        data={**data, ROUTING_FIELD: definition.name},
        state=JobState.ACTIVE,
    )
    ctx = JobContext(
        id=job.id,
        name=definition.name,
        data=data,
        attempt=0,
        job=job,
        _events=engine.events,
        _add=engine.add,
        _list=engine.list,
    )
    return run_with_deadline(definition.handler, ctx, definition.timeout_ms)


def run(
    jobs: str = typer.Argument(..., help="Job definitions to load, as MODULE:ATTRIBUTE"),
    job_name: str = typer.Argument(..., help="Name of the job to run"),
    data: str | None = typer.Option(None, "--data", "-d", help="Job data, as a JSON object"),
    queue: bool = typer.Option(False, "--queue", "-q", help="Queue the job instead of running it inline"),
    name: str = typer.Option("jobspine", "--name", "-n", help="Queue name"),
    redis_url: str | None = typer.Option(None, "--redis-url", "-r", help="Redis URL (default: JOBSPINE_REDIS_URL)"),
) -> None:
    """Execute a job inline, or queue it with ``--queue``.

    Exits with code 1 when the job name is unknown or the job fails.

    Example::

        jobspine run myapp.jobs:configuration hackerman --data '{"target": "Mainframe"}'
        jobspine run myapp.jobs:configuration send-email --queue
    """
    from jobspine.engine import JobEngine

    definitions = load_object(jobs)
    payload = parse_data(data)
    settings = get_settings(redis_url)
    configure_logging(level=settings.log_level, format=settings.log_format)

    try:
        engine = JobEngine(name=name, connection=settings.redis_url, jobs=definitions, settings=settings)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error: {e.message}[/red]")
        raise typer.Exit(code=1) from e

    try:
        definition = engine.registry.lookup(job_name)
        if definition is None:
            valid = "\n".join(f"  - {known}" for known in engine.registry.names())
            err_console.print(
                f"[bold red]This job name is invalid. Please specify one of the following:[/bold red]\n{valid}"
            )
            raise typer.Exit(code=1)

        if queue:
            job = engine.add(job_name, payload)
            console.print(f'[green]Queued job "{job_name}"[/green] (id={job.id})')
            console.print("[dim]A running worker will pick it up.[/dim]")
            return

        console.print(f'[green]Executing job "{job_name}"[/green]')
        race = run_inline(engine, definition, payload)
    finally:
        engine.close()

    if race.outcome is not Outcome.COMPLETED:
        err_console.print(f"[bold red]An error occurred in the job:[/bold red]\n{escape(str(race.error))}")
        raise typer.Exit(code=1)
    result = "" if race.result is None else f"\n{escape(str(race.result))}"
    console.print(f"[green]Job finished successfully.[/green]{result}")
