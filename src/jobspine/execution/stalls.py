"""Stall detector.

A job stalls when the worker that claimed it stops renewing its lock (the
process died or hung). The backing queue finds such jobs and requeues them,
or fails them once they stalled more than ``max_stalled_count`` times. This
detector asks for that sweep on an interval and reports every stalled job as
a ``job_stalled`` warning.

The only repair it makes is to the monitoring counters, which the dead worker
can no longer settle: a requeued job leaves active (and returns to queued
when it stalled on its first attempt), a given-up job is recorded as failed.
"""

from __future__ import annotations

import threading

from jobspine.logging import EventLogger
from jobspine.models import Outcome, split_job_data
from jobspine.monitoring.store import MonitoringStore
from jobspine.queue.protocol import QueueBackend, StalledJob


class StallDetector:
    """Polls the backing queue for stalled jobs."""

    def __init__(
        self,
        backend: QueueBackend,
        monitoring: MonitoringStore,
        events: EventLogger,
        interval_ms: int = 30000,
    ) -> None:
        self.backend = backend
        self.monitoring = monitoring
        self.events = events
        self.interval_ms = interval_ms

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def check(self) -> list[StalledJob]:
        """Run one sweep and report what it found."""
        stalled = self.backend.check_stalled()
        for entry in stalled:
            job_name, job_data = split_job_data(entry.job.data)
            name = job_name or entry.job.name
            self.events.warn("job_stalled", {
                "job_id": entry.job.id,
                "attempt": entry.job.attempts_made,
                "name": name,
                "data": job_data,
                "recovered": entry.recovered,
            })
            if entry.recovered:
                self.monitoring.record_stalled(name, entry.job.attempts_made)
            else:
                self.monitoring.record_finished(name, Outcome.FAILED, 0)
        return stalled

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="jobspine-stalls")
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_ms / 1000):
            try:
                self.check()
            except Exception as e:
                self.events.error("queue_error", {
                    "error_message": str(e),
                    "error_type": type(e).__name__,
                })

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=5.0)
        self._thread = None
