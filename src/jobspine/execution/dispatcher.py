"""Dispatcher - the enqueue path.

Validates a job name against the registry, builds the payload and queue
options, records the enqueue in the monitoring store and submits to the
backing queue.

::

    enqueue(name, data)
      ├── registry.lookup(name)      miss → error "job_not_found", JobNotFoundError
      ├── payload = data + {"handler": name}
      ├── options = {priority: MEDIUM} ← definition options ← remove on complete/fail
      ├── monitoring.record_queued(name)
      ├── backend.submit(name, payload, options)
      └── info "job_queued" {name, data}
"""

from __future__ import annotations

from typing import Any

from jobspine.errors import JobNotFoundError
from jobspine.logging import EventLogger
from jobspine.models import ROUTING_FIELD, Job, Priority
from jobspine.monitoring.store import MonitoringStore
from jobspine.queue.protocol import QueueBackend
from jobspine.registry import JobRegistry


class Dispatcher:
    """Submits jobs by name to the backing queue."""

    def __init__(
        self,
        registry: JobRegistry,
        backend: QueueBackend,
        monitoring: MonitoringStore,
        events: EventLogger,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.monitoring = monitoring
        self.events = events

    def enqueue(self, name: str, data: dict[str, Any] | None = None) -> Job:
        """Submit a job for the definition registered under *name*.

        Returns:
            The backing queue's snapshot of the submitted job.

        Raises:
            JobNotFoundError: If *name* is not registered. Nothing is submitted.
            QueueError: If the backing queue rejects the submission.
        """
        definition = self.registry.lookup(name)
        if definition is None:
            self.events.error("job_not_found", {"name": name})
            raise JobNotFoundError(name)

        payload = {**(data or {}), ROUTING_FIELD: name}
        options = {
            "priority": int(Priority.MEDIUM),
            **definition.options.to_queue_options(),
            "remove_on_complete": True,
            "remove_on_fail": True,
        }

        # Accepted once validated, even if the submission below fails
        self.monitoring.record_queued(name)
        job = self.backend.submit(name, payload, options)
        self.events.info("job_queued", {"name": name, "data": data})
        return job

    def list(self) -> list[Job]:
        """Jobs currently active, then jobs waiting to be claimed."""
        return [*self.backend.get_active(), *self.backend.get_waiting()]
