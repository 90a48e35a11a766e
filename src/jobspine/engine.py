"""JobEngine - one explicit instance owning every collaborator.

::

    JobEngine(name, connection, jobs, logger)
      ├── registry    JobRegistry        (validated at construction)
      ├── backend     QueueBackend       (memory://, redis://, client, instance)
      ├── monitoring  MonitoringStore    (Redis when the queue is Redis)
      ├── dispatcher  Dispatcher         add(), list()
      ├── processor   ProcessingEngine   process()
      ├── stalls      StallDetector      started with process()
      └── scheduler   JobScheduler       schedule()

Usage::

    from jobspine import JobEngine, Priority

    engine = JobEngine(
        name="bgjobs",
        connection="redis://127.0.0.1:6379/0",
        jobs=[
            {"name": "send-email", "handler": send_email,
             "options": {"priority": Priority.MEDIUM, "timeout_ms": 300_000},
             "schedule": "every minute"},
        ],
    )
    engine.add("send-email", {"to": "someone@example.com"})
    engine.process()
    engine.schedule()
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from jobspine.errors import ConfigurationError
from jobspine.execution.dispatcher import Dispatcher
from jobspine.execution.processor import ProcessingEngine
from jobspine.execution.stalls import StallDetector
from jobspine.logging import EventLogger, StructlogEventLogger, validate_event_logger
from jobspine.models import Job, Priority
from jobspine.monitoring.store import MemoryMonitoringStore, MonitoringStore, RedisMonitoringStore
from jobspine.queue import QueueBackend, RedisQueue, connect
from jobspine.registry import JobDefinition, JobRegistry
from jobspine.scheduling.scheduler import JobScheduler
from jobspine.settings import EngineSettings


class JobEngine:
    """Background job engine.

    Raises:
        ConfigurationError: At construction, if the name, connection, job
            definitions or logger are missing or malformed.
    """

    PRIORITIES: dict[str, int] = {p.name: int(p) for p in Priority}

    def __init__(
        self,
        name: str,
        connection: Any,
        jobs: Sequence[JobDefinition | Mapping[str, Any]],
        logger: EventLogger | None = None,
        *,
        settings: EngineSettings | None = None,
        monitoring: MonitoringStore | None = None,
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(
                "The queue options are not valid. Please supply `name`, `connection`, `jobs` & `logger`"
            ).with_context(missing="name")
        if not jobs or isinstance(jobs, (str, Mapping)):
            raise ConfigurationError("At least one job definition is required").with_context(missing="jobs")

        self.name = name
        self.settings = settings or EngineSettings()
        self.events: EventLogger = (
            validate_event_logger(logger) if logger is not None
            else StructlogEventLogger(engine=name)
        )
        self.registry = JobRegistry(jobs)
        self.backend: QueueBackend = connect(connection, name, self.settings)
        self.monitoring: MonitoringStore = monitoring or self._default_monitoring()

        self.dispatcher = Dispatcher(self.registry, self.backend, self.monitoring, self.events)
        self.processor = ProcessingEngine(
            self.registry,
            self.backend,
            self.monitoring,
            self.events,
            self.dispatcher,
            poll_interval_ms=self.settings.poll_interval_ms,
            lock_renew_ms=self.settings.lock_renew_ms,
        )
        self.stalls = StallDetector(
            self.backend,
            self.monitoring,
            self.events,
            interval_ms=self.settings.stalled_interval_ms,
        )
        self.scheduler = JobScheduler(self.registry, self.dispatcher, self.events)

        self.events.info("queue_connected", {"queue": name, "backend": self.backend.name})

    def _default_monitoring(self) -> MonitoringStore:
        if isinstance(self.backend, RedisQueue):
            return RedisMonitoringStore(
                self.backend.client,
                prefix=self.settings.monitoring_prefix,
                history_limit=self.settings.history_limit,
            )
        return MemoryMonitoringStore(history_limit=self.settings.history_limit)

    # === Producer API ===

    def add(self, name: str, data: dict[str, Any] | None = None) -> Job:
        """Enqueue a job by definition name.

        Raises:
            JobNotFoundError: If *name* is not registered (logged first).
        """
        return self.dispatcher.enqueue(name, data)

    def schedule(self) -> None:
        """Start firing every definition that has a recurring schedule."""
        self.scheduler.start()

    # === Consumer API ===

    def process(self) -> None:
        """Start the claim loop and the stall detector. Idempotent."""
        self.processor.start()
        self.stalls.start()

    def list(self) -> list[Job]:
        """Jobs currently active, then jobs waiting."""
        return self.dispatcher.list()

    # === Administration (pass-through to the backing queue) ===

    def pause(self) -> None:
        self.backend.pause()

    def resume(self) -> None:
        self.backend.resume()

    def flush(self) -> int:
        """Remove every job not currently claimed. Returns how many were removed."""
        return self.backend.empty()

    # === Monitoring ===

    def get_data(self) -> list[dict[str, Any]]:
        """``[{name, stats{queued, active, completed, timed_out, failed, total}, history}]``."""
        return [record.to_dict() for record in self.monitoring.snapshot()]

    def health(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "backend": self.backend.name,
            "paused": self.backend.is_paused(),
            "processing": self.processor.is_running,
            "processed": self.processor.processed,
            "scheduler": self.scheduler.health(),
        }

    # === Lifecycle ===

    def close(self) -> None:
        """Stop every loop and close the backing queue."""
        self.scheduler.stop()
        self.stalls.stop()
        self.processor.stop()
        self.backend.close()
        self.events.info("queue_closed", {"queue": self.name})

    def __enter__(self) -> JobEngine:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
