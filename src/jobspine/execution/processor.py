"""Processing engine - the execution path.

One claim loop per engine instance, one handler outstanding at a time.
Horizontal scale-out means running more worker processes.

Per claimed job::

    Claimed ──► Running ──► Completed   ack_success   job_processed
                       ├──► Failed      ack_failure   job_errored
                       └──► TimedOut    ack_failure   job_timeout

1. Split the routing field out of the payload and look the definition up.
   Unknown names are logged and left un-acked; the backing queue's lock
   expiry decides what happens to them.
2. Build the per-attempt :class:`JobContext`, emit ``job_started``, record
   the claim.
3. Race the handler against ``timeout_ms`` (see :mod:`jobspine.execution.timeout`),
   renewing the job lock while waiting.
4. Ack the backing queue and record the outcome in the monitoring store.

Handler errors never escape the loop. Anything else that fails while a
claimed job is handled is logged as ``queue_error`` and the loop carries on.
"""

from __future__ import annotations

import logging
import threading
import traceback
from typing import Any

from jobspine.errors import JobTimeoutError
from jobspine.execution.context import JobContext
from jobspine.execution.dispatcher import Dispatcher
from jobspine.execution.timeout import RaceResult, run_with_deadline
from jobspine.logging import EventLogger, bound_job_context
from jobspine.models import Job, Outcome, split_job_data
from jobspine.monitoring.store import MonitoringStore
from jobspine.queue.protocol import QueueBackend
from jobspine.registry import JobRegistry

logger = logging.getLogger(__name__)


class ProcessingEngine:
    """Claims jobs from the backing queue and runs their handlers."""

    def __init__(
        self,
        registry: JobRegistry,
        backend: QueueBackend,
        monitoring: MonitoringStore,
        events: EventLogger,
        dispatcher: Dispatcher,
        *,
        poll_interval_ms: int = 1000,
        lock_renew_ms: int = 15000,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.monitoring = monitoring
        self.events = events
        self.dispatcher = dispatcher
        self.poll_interval_ms = poll_interval_ms
        self.lock_renew_ms = lock_renew_ms

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self.processed = 0

    # === Lifecycle ===

    def start(self) -> None:
        """Start the claim loop. Calling it again while running does nothing."""
        with self._start_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._loop, daemon=True, name="jobspine-worker")
            self._thread.start()
        self.events.info("worker_started", {"backend": self.backend.name})

    def stop(self, timeout: float = 5.0) -> None:
        """Stop claiming. Waits up to *timeout* seconds for the current job."""
        with self._start_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Worker thread did not stop cleanly")
        with self._start_lock:
            self._thread = None
        self.events.info("worker_stopped", {"processed": self.processed})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        poll = self.poll_interval_ms / 1000
        while not self._stop_event.is_set():
            try:
                job = self.backend.claim(timeout=poll)
            except Exception as e:
                self._queue_error(_error_fields(e))
                self._stop_event.wait(poll)
                continue
            if job is None:
                continue
            try:
                self.process_job(job)
            except Exception as e:
                logger.exception("Processing job %s failed outside its handler", job.id)
                self._queue_error({"job_id": job.id, **_error_fields(e)})
                self._stop_event.wait(poll)

    def _queue_error(self, fields: dict[str, Any]) -> None:
        try:
            self.events.error("queue_error", fields)
        except Exception:
            logger.exception("Event logger failed while reporting a queue error")

    # === One attempt ===

    def process_job(self, job: Job) -> RaceResult | None:
        """Run one claimed job to a reported outcome.

        Returns:
            The race result, or None when the job's definition is unknown.
        """
        job_name, job_data = split_job_data(job.data)
        definition = self.registry.lookup(job_name)
        if definition is None:
            self.events.error("job_not_found", {"name": job_name, "job_id": job.id})
            return None

        ctx = self._build_context(job, job_name, job_data)
        self.events.info("job_started", ctx.correlation)
        self.monitoring.record_claimed(job_name, job.attempts_made)

        with bound_job_context(job.id, job_name, job.attempts_made):
            race = run_with_deadline(
                definition.handler,
                ctx,
                definition.timeout_ms,
                heartbeat=lambda: self._renew_lock(job),
                heartbeat_interval_ms=self.lock_renew_ms,
            )

        self._report(ctx, race)
        try:
            if race.outcome is Outcome.COMPLETED:
                self.backend.ack_success(job, race.result)
            else:
                self.backend.ack_failure(job, race.error)
        except Exception as e:
            self.events.error("queue_error", {**ctx.correlation, **_error_fields(e)})
        self.monitoring.record_finished(job_name, race.outcome, race.duration_ms)
        self.processed += 1
        return race

    def _build_context(self, job: Job, job_name: str, job_data: dict[str, Any]) -> JobContext:
        return JobContext(
            id=job.id,
            name=job_name,
            data=job_data,
            attempt=job.attempts_made,
            job=job,
            _events=self.events,
            _add=self.dispatcher.enqueue,
            _list=self.dispatcher.list,
        )

    def _renew_lock(self, job: Job) -> None:
        try:
            if not self.backend.extend_lock(job):
                logger.warning("Lock of job %s was lost while it ran", job.id)
        except Exception:
            logger.exception("Could not renew lock of job %s", job.id)

    def _report(self, ctx: JobContext, race: RaceResult) -> None:
        fields = {**ctx.correlation, "duration": race.duration_ms}
        if race.outcome is Outcome.COMPLETED:
            self.events.info("job_processed", {**fields, "result": race.result})
        elif race.outcome is Outcome.TIMED_OUT:
            timeout_ms = race.error.timeout_ms if isinstance(race.error, JobTimeoutError) else race.duration_ms
            self.events.error("job_timeout", {**fields, "timeout_ms": timeout_ms})
        else:
            self.events.error("job_errored", {**fields, **_error_fields(race.error)})


def _error_fields(error: BaseException | None) -> dict[str, Any]:
    if error is None:
        return {}
    return {
        "error_message": str(error),
        "error_type": type(error).__name__,
        "error_stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }
