"""Backing queue protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  BACKING QUEUE PROTOCOL                                                       │
│                                                                               │
│  The backing queue stores, orders and redelivers jobs. The engine only       │
│  orchestrates on top of it:                                                   │
│                                                                               │
│   Dispatcher ── submit() ──►  ┌──────────────┐ ── claim() ──► ProcessingEngine│
│                               │ QueueBackend │ ◄─ ack_success / ack_failure ─ │
│   StallDetector ◄ check_stalled() ─┤  (memory,  │ ◄─ extend_lock ──────────── │
│   JobEngine.list() ◄ get_active() ─┤   redis)   │                             │
│                      get_waiting() └──────────────┘                           │
│                                                                               │
│  Responsibility Split:                                                        │
│  - Backend: ordering (priority, then enqueue order), ownership locks,        │
│    attempts/backoff, stall detection, pause/resume/empty                     │
│  - Engine: validation, handler execution, outcome classification, events    │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from jobspine.models import Job
from jobspine.registry import Backoff


@dataclass(frozen=True)
class StalledJob:
    """A job whose owning worker stopped renewing its lock.

    Attributes:
        job: Snapshot of the job at detection time
        recovered: True if the backend moved the job back to the wait list,
            False if it exceeded ``max_stalled_count`` and was failed
    """

    job: Job
    recovered: bool = True


@runtime_checkable
class QueueBackend(Protocol):
    """Protocol for pluggable backing queue stores.

    Implementations:
        - MemoryQueue: in-process, thread-safe (default for ``memory://``)
        - RedisQueue: Redis-backed, shared by many processes
    """

    name: str

    def submit(self, name: str, data: dict[str, Any], options: dict[str, Any]) -> Job:
        """Store a new job in the wait list and return its snapshot."""
        ...

    def claim(self, timeout: float = 0.0) -> Job | None:
        """Take ownership of the next job, waiting up to *timeout* seconds.

        Returns None when nothing is ready or the queue is paused.
        """
        ...

    def extend_lock(self, job: Job) -> bool:
        """Renew the ownership lock of a claimed job."""
        ...

    def ack_success(self, job: Job, result: Any = None) -> None:
        """Mark a claimed job completed."""
        ...

    def ack_failure(self, job: Job, error: BaseException) -> bool:
        """Mark a claimed attempt failed.

        Returns:
            True if the job will be retried, False if it was given up.
        """
        ...

    def check_stalled(self) -> list[StalledJob]:
        """Find active jobs whose lock expired and requeue or fail them."""
        ...

    def get_active(self) -> list[Job]: ...

    def get_waiting(self) -> list[Job]: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def is_paused(self) -> bool: ...

    def empty(self) -> int:
        """Remove every job that is not currently claimed. Returns the count."""
        ...

    def close(self) -> None: ...


def retry_delay_ms(options: dict[str, Any], attempts_made: int) -> int | None:
    """Delay before the next attempt, or None when attempts are exhausted.

    Args:
        options: Queue options the job was submitted with
        attempts_made: Failed attempts so far, including the one just finished
    """
    if attempts_made >= int(options.get("attempts", 1)):
        return None
    backoff = options.get("backoff")
    if not backoff:
        return 0
    return Backoff.model_validate(backoff).delay_for(attempts_made)
