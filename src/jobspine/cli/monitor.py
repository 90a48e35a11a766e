"""
CLI: ``jobspine monitor`` and ``jobspine stats`` - read-only monitoring views.
"""

from __future__ import annotations

import json

import typer

from jobspine.cli.utils import console, get_monitoring_store, get_settings
from jobspine.monitoring.dashboard import Dashboard, render


def monitor(
    redis_url: str | None = typer.Option(None, "--redis-url", "-r", help="Redis URL (default: JOBSPINE_REDIS_URL)"),
    refresh: int | None = typer.Option(None, "--refresh", help="Refresh interval in ms"),
) -> None:
    """Live dashboard of queued, active and finished jobs per job name.

    Example::

        jobspine monitor --redis-url redis://127.0.0.1:6379/0 --refresh 2000
    """
    settings = get_settings(redis_url)
    store = get_monitoring_store(settings)
    dashboard = Dashboard(store.snapshot, refresh_ms=refresh or settings.dashboard_refresh_ms, console=console)
    try:
        dashboard.run()
    except KeyboardInterrupt:
        dashboard.stop()


def stats(
    redis_url: str | None = typer.Option(None, "--redis-url", "-r", help="Redis URL (default: JOBSPINE_REDIS_URL)"),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
) -> None:
    """Print one monitoring snapshot."""
    settings = get_settings(redis_url)
    records = get_monitoring_store(settings).snapshot()
    if as_json:
        payload = [record.to_dict() for record in sorted(records, key=lambda r: r.name)]
        console.print_json(json.dumps(payload))
        return
    if not records:
        console.print("[dim]No jobs recorded yet.[/dim]")
        return
    console.print(render(records))
