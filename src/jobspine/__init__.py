"""
jobspine - background job processing with deadlines, schedules and live monitoring.

Register named job definitions, enqueue work by name, and let a worker run
the handlers one at a time under a cooperative deadline while counters and
history feed the terminal dashboard.

Quick start:
    >>> from jobspine import JobEngine, Priority
    >>>
    >>> def hackerman(job):
    ...     job.info(f"Hackerman is off to hack the {job.data['target']}")
    >>>
    >>> engine = JobEngine(
    ...     name="bgjobs",
    ...     connection="memory://",
    ...     jobs=[{"name": "hackerman", "handler": hackerman,
    ...            "options": {"priority": Priority.HIGH, "timeout_ms": 1000}}],
    ... )
    >>> engine.add("hackerman", {"target": "Mainframe"})
    >>> engine.process()
"""

from jobspine.engine import JobEngine
from jobspine.errors import (
    ConfigurationError,
    ErrorCategory,
    JobNotFoundError,
    JobspineError,
    JobTimeoutError,
    QueueError,
)
from jobspine.execution.context import JobContext
from jobspine.logging import EventLogger, StructlogEventLogger, configure_logging
from jobspine.models import Job, JobState, MonitoringRecord, Outcome, Priority
from jobspine.registry import Backoff, BackoffType, JobDefinition, JobOptions, JobRegistry
from jobspine.settings import EngineSettings

__version__ = "0.1.0"

__all__ = [
    "Backoff",
    "BackoffType",
    "ConfigurationError",
    "EngineSettings",
    "ErrorCategory",
    "EventLogger",
    "Job",
    "JobContext",
    "JobDefinition",
    "JobEngine",
    "JobNotFoundError",
    "JobOptions",
    "JobRegistry",
    "JobState",
    "JobTimeoutError",
    "JobspineError",
    "MonitoringRecord",
    "Outcome",
    "Priority",
    "QueueError",
    "StructlogEventLogger",
    "configure_logging",
]
