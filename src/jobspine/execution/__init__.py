"""Execution: enqueue path, claim loop, deadline race and stall detection."""

from jobspine.execution.context import JobContext
from jobspine.execution.dispatcher import Dispatcher
from jobspine.execution.processor import ProcessingEngine
from jobspine.execution.stalls import StallDetector
from jobspine.execution.timeout import Deadline, RaceResult, run_with_deadline, start_handler

__all__ = [
    "Deadline",
    "Dispatcher",
    "JobContext",
    "ProcessingEngine",
    "RaceResult",
    "StallDetector",
    "run_with_deadline",
    "start_handler",
]
