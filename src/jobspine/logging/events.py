"""
Lifecycle event logging contract.

The engine reports everything it does through an ``EventLogger``: an object
with ``info``, ``warn`` and ``error`` methods that each take an event kind and
a mapping of fields. Any object with that shape works (a test double that
appends to a list, an adapter over another logging system); the default is
:class:`StructlogEventLogger`.

Event kinds:
    job_queued, job_started, job_processed, job_errored, job_timeout,
    job_stalled, job_scheduled, job_not_found, schedule_failed,
    worker_started, worker_stopped, queue_connected, queue_error, queue_closed
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

import structlog

from jobspine.errors import ConfigurationError

REQUIRED_LOGGER_METHODS = ("info", "warn", "error")


@runtime_checkable
class EventLogger(Protocol):
    """Structured sink for engine lifecycle events."""

    def info(self, kind: str, fields: Mapping[str, Any]) -> None: ...

    def warn(self, kind: str, fields: Mapping[str, Any]) -> None: ...

    def error(self, kind: str, fields: Mapping[str, Any]) -> None: ...


def validate_event_logger(logger: Any) -> EventLogger:
    """Check that *logger* satisfies the ``EventLogger`` contract.

    Raises:
        ConfigurationError: If any of ``info``, ``warn`` or ``error`` is
            missing or not callable.
    """
    missing = [
        method for method in REQUIRED_LOGGER_METHODS
        if not callable(getattr(logger, method, None))
    ]
    if logger is None or missing:
        raise ConfigurationError(
            "The logger must provide callable `info`, `warn` and `error` methods"
        ).with_context(missing=missing or list(REQUIRED_LOGGER_METHODS))
    return logger


class StructlogEventLogger:
    """``EventLogger`` backed by structlog.

    Event kinds become the structlog event name and fields become keyword
    arguments, so ``info("job_queued", {"name": "x"})`` renders as
    ``event='job_queued' name='x'``.

    Example:
        >>> log = StructlogEventLogger(engine="bgjobs")
        >>> log.warn("job_stalled", {"job_id": "7", "attempt": 0})
    """

    def __init__(self, logger_name: str = "jobspine", **bound: Any):
        self._log = structlog.get_logger(logger_name).bind(**bound)

    def info(self, kind: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log.info(kind, **_as_kwargs(fields))

    def warn(self, kind: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log.warning(kind, **_as_kwargs(fields))

    def error(self, kind: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log.error(kind, **_as_kwargs(fields))


def _as_kwargs(fields: Mapping[str, Any] | None) -> dict[str, Any]:
    # "event" is reserved by structlog for the message
    kwargs = dict(fields or {})
    if "event" in kwargs:
        kwargs["event_data"] = kwargs.pop("event")
    return kwargs


@contextmanager
def bound_job_context(job_id: str, job_name: str, attempt: int) -> Iterator[None]:
    """Bind job correlation fields for every structlog call in this context.

    Usage:
        with bound_job_context(job.id, job.name, job.attempts_made):
            handler(ctx)
    """
    with structlog.contextvars.bound_contextvars(
        job_id=job_id,
        job_name=job_name,
        attempt=attempt,
    ):
        yield
