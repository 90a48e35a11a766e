"""Per-attempt job context handed to handlers.

A handler receives exactly one argument, a :class:`JobContext`. It carries
the job's identity and payload, three logging entry points that forward to
the engine's event logger with the job's correlation fields, and bound
``add``/``list`` calls so handlers can fan out follow-up work or inspect the
queue. The context lives for one attempt only.

Example:
    >>> async def send_reminders(job: JobContext):
    ...     job.info("sending", {"users": len(job.data["users"])})
    ...     job.add("hackerman", {"target": "Mainframe"})
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from jobspine.logging import EventLogger
from jobspine.models import Job


@dataclass
class JobContext:
    """What a handler sees of the engine during one attempt."""

    id: str
    name: str
    data: dict[str, Any]
    attempt: int
    job: Job
    _events: EventLogger = field(repr=False)
    _add: Callable[[str, dict[str, Any] | None], Job] = field(repr=False)
    _list: Callable[[], list[Job]] = field(repr=False)

    @property
    def correlation(self) -> dict[str, Any]:
        """Fields attached to every event about this attempt."""
        return {
            "job_id": self.id,
            "attempt": self.attempt,
            "name": self.name,
            "data": self.data,
        }

    def _send(self, level: str, message: str, data: Any) -> None:
        getattr(self._events, level)(message, {**self.correlation, "message_data": data})

    def info(self, message: str, data: Any = None) -> None:
        self._send("info", message, data)

    def warn(self, message: str, data: Any = None) -> None:
        self._send("warn", message, data)

    def error(self, message: str, data: Any = None) -> None:
        self._send("error", message, data)

    def add(self, name: str, data: dict[str, Any] | None = None) -> Job:
        """Enqueue another job. Raises ``JobNotFoundError`` like ``JobEngine.add``."""
        return self._add(name, data)

    def list(self) -> list[Job]:
        """Jobs currently active or waiting."""
        return self._list()
