"""Recurring job scheduler.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB SCHEDULER                                                                │
│                                                                               │
│   start()                                                                     │
│      │  resolve every definition's schedule once → CronExpression|NamedAlias │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Daemon Thread (loop)                       │                │
│   │                                                         │                │
│   │   while not stop_event.wait(until earliest next fire):  │                │
│   │       for each due trigger:                             │                │
│   │           dispatcher.enqueue(name)                      │                │
│   │           next_fire = trigger.next_fire(now)            │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│  Scheduling is purely additive: it only enqueues. Every process that calls   │
│  start() with the same definitions fires the same schedules.                 │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from jobspine.logging import EventLogger
from jobspine.registry import JobRegistry
from jobspine.scheduling.triggers import Trigger, resolve_schedule

if TYPE_CHECKING:
    from jobspine.execution.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class ScheduledJob:
    """A resolved schedule and its next fire time."""

    name: str
    schedule: str
    trigger: Trigger
    next_fire: datetime
    fire_count: int = 0
    last_fire: datetime | None = None


class JobScheduler:
    """Fires ``Dispatcher.enqueue(name)`` for every scheduled definition.

    Example:
        >>> scheduler = JobScheduler(registry, dispatcher, events)
        >>> scheduler.start()
        >>> # ... later ...
        >>> scheduler.stop()
    """

    def __init__(self, registry: JobRegistry, dispatcher: Dispatcher, events: EventLogger) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self.events = events

        self._jobs: list[ScheduledJob] = []
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._tick_count = 0

    def start(self) -> list[ScheduledJob]:
        """Resolve all schedules and start the timer thread.

        Raises:
            ConfigurationError: If a schedule string cannot be resolved.
        """
        if self.is_running:
            logger.warning("JobScheduler already started")
            return list(self._jobs)

        now = _now()
        jobs = []
        for definition in self.registry.schedulable():
            trigger = resolve_schedule(definition.schedule)
            jobs.append(ScheduledJob(
                name=definition.name,
                schedule=definition.schedule,
                trigger=trigger,
                next_fire=trigger.next_fire(now),
            ))

        with self._lock:
            self._jobs = jobs
        for job in jobs:
            self.events.info("job_scheduled", {
                "name": job.name,
                "schedule": job.schedule,
                "next_run": job.next_fire.isoformat(),
            })

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="jobspine-scheduler")
        self._thread.start()
        logger.info("JobScheduler started with %d schedule(s)", len(jobs))
        return list(jobs)

    def _loop(self) -> None:
        while not self._stop_event.wait(self._seconds_until_next()):
            self._fire_due(_now())
        logger.info("JobScheduler stopped")

    def _seconds_until_next(self) -> float | None:
        with self._lock:
            if not self._jobs:
                return None  # wait until stopped
            earliest = min(job.next_fire for job in self._jobs)
        return max((earliest - _now()).total_seconds(), 0.0)

    def _fire_due(self, now: datetime) -> None:
        with self._lock:
            due = [job for job in self._jobs if job.next_fire <= now]
            self._tick_count += 1
        for job in due:
            try:
                self.dispatcher.enqueue(job.name)
            except Exception as e:
                self.events.error("schedule_failed", {
                    "name": job.name,
                    "schedule": job.schedule,
                    "error_message": str(e),
                    "error_type": type(e).__name__,
                })
            with self._lock:
                job.fire_count += 1
                job.last_fire = now
                job.next_fire = job.trigger.next_fire(now)

    def stop(self) -> None:
        """Stop the timer thread. Waits up to 5 seconds for a fire in progress."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=5.0)
        if self._thread.is_alive():
            logger.warning("Scheduler thread did not stop cleanly")
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def jobs(self) -> list[ScheduledJob]:
        with self._lock:
            return list(self._jobs)

    def health(self) -> dict[str, Any]:
        """Return scheduler health status."""
        with self._lock:
            return {
                "healthy": self.is_running,
                "backend": "thread",
                "tick_count": self._tick_count,
                "schedules": [
                    {
                        "name": job.name,
                        "schedule": job.schedule,
                        "fire_count": job.fire_count,
                        "last_fire": job.last_fire.isoformat() if job.last_fire else None,
                        "next_fire": job.next_fire.isoformat(),
                    }
                    for job in self._jobs
                ],
            }
