"""Monitoring store - per-job-name counters and bounded history.

Counters are mutated by several worker processes at once, so every mutation
is a single atomic increment/decrement against the backing storage: a lock
around an in-process dict for :class:`MemoryMonitoringStore`, ``HINCRBY`` for
:class:`RedisMonitoringStore`. Nothing reads a counter in order to write it.

Lifecycle of the counters for one job::

    record_queued      queued +1
    record_claimed     queued -1 (first attempt only), active +1
    record_finished    active -1, <outcome> +1, history push + trim
    record_stalled     active -1, queued +1 (first attempt only; the
                       backing queue re-queued it)

Redis layout::

    <prefix>joblist              SET   known job names
    <prefix>job:stats:<name>     HASH  queued/active/completed/timed_out/failed
    <prefix>job:history:<name>   LIST  JSON [duration_ms, status, timestamp_ms]
"""

from __future__ import annotations

import json
import threading
from collections import defaultdict, deque
from typing import Protocol, runtime_checkable

import redis

from jobspine.models import (
    COUNTER_FIELDS,
    HISTORY_LIMIT,
    HistoryEntry,
    MonitoringRecord,
    Outcome,
    now_ms,
)


@runtime_checkable
class MonitoringStore(Protocol):
    """Protocol for monitoring counter/history storage."""

    def record_queued(self, name: str) -> None: ...

    def record_claimed(self, name: str, attempts_made: int = 0) -> None: ...

    def record_finished(self, name: str, outcome: Outcome, duration_ms: int) -> None: ...

    def record_stalled(self, name: str, attempts_made: int = 0) -> None: ...

    def snapshot(self) -> list[MonitoringRecord]: ...

    def clear(self) -> None: ...


class MemoryMonitoringStore:
    """In-process monitoring store guarded by a lock."""

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self.history_limit = history_limit
        self._lock = threading.Lock()
        self._counters: dict[str, dict[str, int]] = {}
        self._history: dict[str, deque[HistoryEntry]] = defaultdict(
            lambda: deque(maxlen=self.history_limit)
        )

    def _incr(self, name: str, **deltas: int) -> None:
        with self._lock:
            counters = self._counters.setdefault(name, dict.fromkeys(COUNTER_FIELDS, 0))
            for counter, delta in deltas.items():
                counters[counter] += delta

    def record_queued(self, name: str) -> None:
        self._incr(name, queued=1)

    def record_claimed(self, name: str, attempts_made: int = 0) -> None:
        if attempts_made == 0:
            self._incr(name, queued=-1, active=1)
        else:
            self._incr(name, active=1)

    def record_finished(self, name: str, outcome: Outcome, duration_ms: int) -> None:
        entry = HistoryEntry(duration_ms=int(duration_ms), status=Outcome(outcome), timestamp_ms=now_ms())
        with self._lock:
            counters = self._counters.setdefault(name, dict.fromkeys(COUNTER_FIELDS, 0))
            counters["active"] -= 1
            counters[entry.status.value] += 1
            self._history[name].appendleft(entry)

    def record_stalled(self, name: str, attempts_made: int = 0) -> None:
        if attempts_made == 0:
            self._incr(name, active=-1, queued=1)
        else:
            self._incr(name, active=-1)

    def snapshot(self) -> list[MonitoringRecord]:
        with self._lock:
            return [
                MonitoringRecord(name=name, **counters, history=list(self._history.get(name, ())))
                for name, counters in self._counters.items()
            ]

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._history.clear()


class RedisMonitoringStore:
    """Monitoring store shared by every process connected to one Redis."""

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "jobspine:monit:",
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self.client = client
        self.prefix = prefix
        self.history_limit = history_limit

    @classmethod
    def from_url(cls, url: str, **kwargs) -> RedisMonitoringStore:
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def _job_key(self, name: str) -> str:
        return f"{self.prefix}job:stats:{name}"

    def _history_key(self, name: str) -> str:
        return f"{self.prefix}job:history:{name}"

    def record_queued(self, name: str) -> None:
        pipe = self.client.pipeline()
        pipe.sadd(f"{self.prefix}joblist", name)
        pipe.hincrby(self._job_key(name), "queued", 1)
        pipe.execute()

    def record_claimed(self, name: str, attempts_made: int = 0) -> None:
        pipe = self.client.pipeline()
        pipe.sadd(f"{self.prefix}joblist", name)
        if attempts_made == 0:
            pipe.hincrby(self._job_key(name), "queued", -1)
        pipe.hincrby(self._job_key(name), "active", 1)
        pipe.execute()

    def record_finished(self, name: str, outcome: Outcome, duration_ms: int) -> None:
        entry = HistoryEntry(duration_ms=int(duration_ms), status=Outcome(outcome), timestamp_ms=now_ms())
        pipe = self.client.pipeline()
        pipe.sadd(f"{self.prefix}joblist", name)
        pipe.hincrby(self._job_key(name), "active", -1)
        pipe.hincrby(self._job_key(name), entry.status.value, 1)
        pipe.lpush(self._history_key(name), json.dumps(entry.to_list()))
        pipe.ltrim(self._history_key(name), 0, self.history_limit - 1)
        pipe.execute()

    def record_stalled(self, name: str, attempts_made: int = 0) -> None:
        pipe = self.client.pipeline()
        pipe.sadd(f"{self.prefix}joblist", name)
        pipe.hincrby(self._job_key(name), "active", -1)
        if attempts_made == 0:
            pipe.hincrby(self._job_key(name), "queued", 1)
        pipe.execute()

    def snapshot(self) -> list[MonitoringRecord]:
        names = [_text(n) for n in self.client.smembers(f"{self.prefix}joblist")]
        pipe = self.client.pipeline()
        for name in names:
            pipe.hgetall(self._job_key(name))
            pipe.lrange(self._history_key(name), 0, -1)
        results = pipe.execute()

        records = []
        for i, name in enumerate(names):
            stats, history = results[2 * i], results[2 * i + 1]
            counters = {
                counter: int(value)
                for counter, value in ((_text(k), v) for k, v in stats.items())
                if counter in COUNTER_FIELDS
            }
            records.append(MonitoringRecord(
                name=name,
                **counters,
                history=[HistoryEntry.from_list(json.loads(raw)) for raw in history],
            ))
        return records

    def clear(self) -> None:
        names = [_text(n) for n in self.client.smembers(f"{self.prefix}joblist")]
        keys = [f"{self.prefix}joblist"]
        for name in names:
            keys += [self._job_key(name), self._history_key(name)]
        self.client.delete(*keys)


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)
