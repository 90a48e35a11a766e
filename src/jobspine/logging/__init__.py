"""
jobspine logging - structured lifecycle events on top of structlog.

This package provides:
- ``configure_logging()``: one-shot structlog + stdlib configuration
- ``EventLogger``: the ``info/warn/error(kind, fields)`` contract the engine
  emits lifecycle events through
- ``StructlogEventLogger``: the default ``EventLogger`` implementation
- ``bound_job_context()``: correlation fields attached to every log entry
  made while a job attempt runs

Usage:
    from jobspine.logging import configure_logging, StructlogEventLogger

    configure_logging(level="INFO", format="json")
    logger = StructlogEventLogger(engine="bgjobs")
    logger.info("job_queued", {"name": "send-email", "data": {}})
"""

from jobspine.logging.config import configure_logging, is_configured
from jobspine.logging.events import (
    EventLogger,
    StructlogEventLogger,
    bound_job_context,
    validate_event_logger,
)

__all__ = [
    "configure_logging",
    "is_configured",
    "EventLogger",
    "StructlogEventLogger",
    "bound_job_context",
    "validate_event_logger",
]
