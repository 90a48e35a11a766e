"""
Terminal monitoring dashboard.

Polls a monitoring snapshot on a fixed interval and renders it with rich:
one row per job name (sorted), counters coloured when non-zero, a sparkline
of recent durations plus the last outcomes, and a TOTAL row. Read-only.

Usage:
    from jobspine.monitoring import Dashboard

    Dashboard(engine.monitoring.snapshot, refresh_ms=2000).run()
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from jobspine.models import COUNTER_FIELDS, HistoryEntry, MonitoringRecord, Outcome

SPARK_CHARS = "▁▂▃▄▅▆▇█"
SPARK_POINTS = 25
SPARK_WIDTH = 30
RECENT_OUTCOMES = 10

COUNTER_STYLES = {
    "queued": "magenta",
    "active": "blue",
    "completed": "green",
    "timed_out": "yellow",
    "failed": "red",
}

OUTCOME_STYLES = {
    Outcome.COMPLETED: "green",
    Outcome.TIMED_OUT: "yellow",
    Outcome.FAILED: "red",
}


def sparkline(values: Sequence[float]) -> str:
    """Render values as unicode bars scaled from 0 to the max value."""
    if not values:
        return ""
    top = max(values)
    if top <= 0:
        return SPARK_CHARS[0] * len(values)
    last = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[round(max(v, 0) / top * last)] for v in values)


def format_duration(ms: int) -> str:
    """Short human readable duration in the largest fitting unit: 850ms, 3s, 2m, 1h, 4d."""
    for unit, size in (("d", 86_400_000), ("h", 3_600_000), ("m", 60_000), ("s", 1000)):
        if ms >= size:
            return f"{ms // size}{unit}"
    return f"{ms}ms"


def _counter(value: int, counter: str, bold: bool = False) -> Text:
    style = "grey50" if value == 0 else COUNTER_STYLES[counter]
    return Text(str(value), style=f"bold {style}" if bold else style)


def _history_cell(history: list[HistoryEntry]) -> Text:
    durations = [entry.duration_ms for entry in history[:SPARK_POINTS]]
    cell = Text(sparkline(durations).ljust(SPARK_WIDTH))
    for i, entry in enumerate(history[:RECENT_OUTCOMES]):
        if i:
            cell.append(", ")
        cell.append(format_duration(entry.duration_ms), style=OUTCOME_STYLES[entry.status])
    return cell


def render(records: Sequence[MonitoringRecord]) -> Table:
    """Build the dashboard table for one snapshot."""
    table = Table(
        "Name", "Queued", "Active", "Completed", "Timeout", "Failed", "Processing History",
        header_style="bold",
        show_lines=False,
    )

    ordered = sorted(records, key=lambda record: record.name)
    for record in ordered:
        table.add_row(
            record.name,
            *(_counter(getattr(record, counter), counter) for counter in COUNTER_FIELDS),
            _history_cell(record.history),
        )

    table.add_section()
    totals = {counter: sum(getattr(r, counter) for r in ordered) for counter in COUNTER_FIELDS}
    table.add_row(
        Text("TOTAL", style="bold"),
        *(_counter(totals[counter], counter, bold=True) for counter in COUNTER_FIELDS),
        "",
    )
    return table


class Dashboard:
    """Live-refreshing dashboard over a snapshot source."""

    def __init__(
        self,
        source: Callable[[], Sequence[MonitoringRecord]],
        refresh_ms: int = 2000,
        console: Console | None = None,
    ) -> None:
        self.source = source
        self.refresh_ms = refresh_ms
        self.console = console or Console()
        self._stop = threading.Event()

    def render_once(self) -> Table:
        return render(self.source())

    def run(self) -> None:
        """Redraw until :meth:`stop` is called or the user interrupts."""
        self._stop.clear()
        with Live(self.render_once(), console=self.console, screen=False, auto_refresh=False) as live:
            while not self._stop.wait(self.refresh_ms / 1000):
                live.update(self.render_once(), refresh=True)

    def stop(self) -> None:
        self._stop.set()
