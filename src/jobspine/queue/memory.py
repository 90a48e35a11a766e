"""In-process backing queue.

``MemoryQueue`` keeps every job in this process. It honours the same contract
as the Redis backend (priority ordering, ownership locks, attempts/backoff,
stall detection, pause/resume/empty) so engines and tests can run without a
server. Several engines in one process can share an instance.

Example:
    >>> queue = MemoryQueue(lock_duration_ms=30_000)
    >>> job = queue.submit("echo", {"handler": "echo"}, {"priority": 10})
    >>> queue.claim().id == job.id
    True
"""

from __future__ import annotations

import copy
import heapq
import itertools
import logging
import threading
import time
from typing import Any

from jobspine.models import Job, JobState, Priority, utcnow
from jobspine.queue.protocol import StalledJob, retry_delay_ms

logger = logging.getLogger(__name__)


class MemoryQueue:
    """Thread-safe in-memory ``QueueBackend``."""

    name = "memory"

    def __init__(self, lock_duration_ms: int = 30000, max_stalled_count: int = 1) -> None:
        self.lock_duration_ms = lock_duration_ms
        self.max_stalled_count = max_stalled_count

        self._cond = threading.Condition()
        self._ids = itertools.count(1)
        self._seq = itertools.count()
        self._jobs: dict[str, Job] = {}
        self._waiting: list[tuple[int, int, str]] = []
        self._delayed: list[tuple[float, int, str]] = []
        self._active: dict[str, float] = {}  # job id -> lock expiry (monotonic)
        self._stalled_counts: dict[str, int] = {}
        self._paused = False
        self._closed = False

    # === Producer side ===

    def submit(self, name: str, data: dict[str, Any], options: dict[str, Any]) -> Job:
        with self._cond:
            job = Job(
                id=str(next(self._ids)),
                name=name,
                data=dict(data),
                priority=int(options.get("priority", Priority.MEDIUM)),
                options=dict(options),
            )
            self._jobs[job.id] = job
            self._push_waiting(job)
            self._cond.notify()
            return copy.deepcopy(job)

    # === Consumer side ===

    def claim(self, timeout: float = 0.0) -> Job | None:
        deadline = time.monotonic() + max(timeout, 0.0)
        with self._cond:
            while True:
                self._promote_delayed()
                if not self._paused and not self._closed and self._waiting:
                    _, _, job_id = heapq.heappop(self._waiting)
                    job = self._jobs[job_id]
                    job.transition_to(JobState.ACTIVE)
                    job.started_at = utcnow()
                    self._active[job_id] = time.monotonic() + self.lock_duration_ms / 1000
                    return copy.deepcopy(job)

                remaining = deadline - time.monotonic()
                if remaining <= 0 or self._closed:
                    return None
                self._cond.wait(min(remaining, self._next_delayed_in()))

    def extend_lock(self, job: Job) -> bool:
        with self._cond:
            if job.id not in self._active:
                return False
            self._active[job.id] = time.monotonic() + self.lock_duration_ms / 1000
            return True

    def ack_success(self, job: Job, result: Any = None) -> None:
        with self._cond:
            if self._active.pop(job.id, None) is None:
                logger.warning("Completed job %s is no longer active", job.id)
                return
            stored = self._jobs.pop(job.id)
            stored.transition_to(JobState.COMPLETED)
            self._stalled_counts.pop(job.id, None)

    def ack_failure(self, job: Job, error: BaseException) -> bool:
        with self._cond:
            if self._active.pop(job.id, None) is None:
                logger.warning("Failed job %s is no longer active", job.id)
                return False
            stored = self._jobs[job.id]
            stored.attempts_made += 1
            stored.transition_to(JobState.FAILED)
            stored.finished_at = utcnow()

            delay_ms = retry_delay_ms(stored.options, stored.attempts_made)
            if delay_ms is None:
                del self._jobs[job.id]
                self._stalled_counts.pop(job.id, None)
                return False

            stored.transition_to(JobState.QUEUED)
            if delay_ms:
                heapq.heappush(
                    self._delayed,
                    (time.monotonic() + delay_ms / 1000, next(self._seq), stored.id),
                )
            else:
                self._push_waiting(stored)
            self._cond.notify()
            return True

    def check_stalled(self) -> list[StalledJob]:
        now = time.monotonic()
        stalled: list[StalledJob] = []
        with self._cond:
            for job_id, expires_at in list(self._active.items()):
                if expires_at > now:
                    continue
                del self._active[job_id]
                job = self._jobs[job_id]
                count = self._stalled_counts.get(job_id, 0) + 1
                self._stalled_counts[job_id] = count
                if count > self.max_stalled_count:
                    del self._jobs[job_id]
                    self._stalled_counts.pop(job_id, None)
                    stalled.append(StalledJob(job=copy.deepcopy(job), recovered=False))
                    continue
                job.transition_to(JobState.QUEUED)
                self._push_waiting(job)
                stalled.append(StalledJob(job=copy.deepcopy(job), recovered=True))
            if stalled:
                self._cond.notify_all()
        return stalled

    # === Inspection ===

    def get_active(self) -> list[Job]:
        with self._cond:
            return [copy.deepcopy(self._jobs[job_id]) for job_id in self._active]

    def get_waiting(self) -> list[Job]:
        with self._cond:
            ready = [self._jobs[job_id] for _, _, job_id in sorted(self._waiting)]
            delayed = [self._jobs[job_id] for _, _, job_id in sorted(self._delayed)]
            return [copy.deepcopy(job) for job in ready + delayed]

    # === Administration ===

    def pause(self) -> None:
        with self._cond:
            self._paused = True

    def resume(self) -> None:
        with self._cond:
            self._paused = False
            self._cond.notify_all()

    def is_paused(self) -> bool:
        with self._cond:
            return self._paused

    def empty(self) -> int:
        with self._cond:
            removed = [job_id for _, _, job_id in self._waiting + self._delayed]
            for job_id in removed:
                del self._jobs[job_id]
                self._stalled_counts.pop(job_id, None)
            self._waiting.clear()
            self._delayed.clear()
            return len(removed)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    # === Internals (caller holds the lock) ===

    def _push_waiting(self, job: Job) -> None:
        heapq.heappush(self._waiting, (job.priority, next(self._seq), job.id))

    def _promote_delayed(self) -> None:
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, _, job_id = heapq.heappop(self._delayed)
            self._push_waiting(self._jobs[job_id])

    def _next_delayed_in(self) -> float:
        if not self._delayed:
            return float("inf")
        return max(self._delayed[0][0] - time.monotonic(), 0.0)
