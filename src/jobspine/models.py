"""Job domain models.

Defines the data structures shared by the dispatcher, the processing engine,
the backing queues and the monitoring store:
- Priority: ordered priority ranks (lower value = served first)
- JobState: lifecycle state of one queued/executing job
- Outcome: terminal classification of one execution attempt
- Job: a queued or executing unit of work as seen by the engine
- HistoryEntry / MonitoringRecord: per-name monitoring data
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import Any

#: Payload key carrying the job name, so one queue channel can carry many job types
ROUTING_FIELD = "handler"

#: Most-recent-first history entries kept per job name
HISTORY_LIMIT = 1000


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(utcnow().timestamp() * 1000)


class Priority(IntEnum):
    """Priority ranks. Lower numeric value is served first."""

    HIGH = 5
    MEDIUM = 10
    LOW = 20


class InvalidTransitionError(ValueError):
    """Raised when an illegal job state transition is attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid JobState transition: {current} → {target}")


class JobState(str, Enum):
    """State of a job.

    Valid transition graph::

        QUEUED    → ACTIVE
        ACTIVE    → COMPLETED | FAILED | TIMED_OUT | QUEUED (stalled)
        FAILED    → QUEUED (retry)
        TIMED_OUT → QUEUED (retry)
        COMPLETED → (terminal)

    Stalled is an event, not a state: a stalled job goes back to QUEUED.
    """

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


JOB_VALID_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.QUEUED: frozenset({JobState.ACTIVE}),
    JobState.ACTIVE: frozenset({
        JobState.COMPLETED,
        JobState.FAILED,
        JobState.TIMED_OUT,
        JobState.QUEUED,  # stalled
    }),
    JobState.FAILED: frozenset({JobState.QUEUED}),
    JobState.TIMED_OUT: frozenset({JobState.QUEUED}),
    JobState.COMPLETED: frozenset(),
}


def validate_job_transition(current: JobState, target: JobState) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    if target not in JOB_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value)


class Outcome(str, Enum):
    """Terminal classification of one execution attempt."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def state(self) -> JobState:
        return JobState(self.value)


@dataclass
class Job:
    """A queued or executing unit of work.

    The backing queue owns the durable record; instances of this class are
    snapshots handed to the engine on submit, claim and list.
    """

    id: str
    """Opaque id assigned by the backing queue"""

    name: str
    """Job definition this job runs"""

    data: dict[str, Any] = field(default_factory=dict)
    """Payload, including the routing field"""

    priority: int = Priority.MEDIUM
    attempts_made: int = 0
    state: JobState = JobState.QUEUED
    options: dict[str, Any] = field(default_factory=dict)
    enqueued_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def transition_to(self, target: JobState) -> None:
        """Validate and apply a state change."""
        validate_job_transition(self.state, target)
        self.state = target

    @property
    def payload(self) -> dict[str, Any]:
        """The caller-supplied data, without the routing field."""
        return split_job_data(self.data)[1]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON/storage."""
        return {
            "id": self.id,
            "name": self.name,
            "data": self.data,
            "priority": int(self.priority),
            "attempts_made": self.attempts_made,
            "state": self.state.value,
            "options": self.options,
            "enqueued_at": self.enqueued_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def split_job_data(data: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """Separate the routing field from a job payload.

    Returns:
        ``(job_name, job_data)`` where ``job_data`` no longer has the routing field.
    """
    job_data = dict(data)
    job_name = job_data.pop(ROUTING_FIELD, None)
    return job_name, job_data


@dataclass(frozen=True)
class HistoryEntry:
    """One finished execution attempt."""

    duration_ms: int
    status: Outcome
    timestamp_ms: int

    def to_list(self) -> list[Any]:
        """``[duration_ms, status, timestamp_ms]``, the stored history format."""
        return [self.duration_ms, self.status.value, self.timestamp_ms]

    @classmethod
    def from_list(cls, raw: list[Any]) -> HistoryEntry:
        duration, status, timestamp = raw
        return cls(duration_ms=int(duration), status=Outcome(status), timestamp_ms=int(timestamp))


COUNTER_FIELDS = ("queued", "active", "completed", "timed_out", "failed")


@dataclass
class MonitoringRecord:
    """Counters and recent history for one job name."""

    name: str
    queued: int = 0
    active: int = 0
    completed: int = 0
    timed_out: int = 0
    failed: int = 0
    history: list[HistoryEntry] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(getattr(self, counter) for counter in COUNTER_FIELDS)

    @property
    def counters(self) -> dict[str, int]:
        return {counter: getattr(self, counter) for counter in COUNTER_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        """``{name, stats, history}`` as returned by ``JobEngine.get_data()``."""
        return {
            "name": self.name,
            "stats": {**self.counters, "total": self.total},
            "history": [entry.to_list() for entry in self.history],
        }
