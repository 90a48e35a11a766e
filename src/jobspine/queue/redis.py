"""Redis-backed backing queue.

Stores jobs in Redis so that many producer and worker processes share one
queue. Key layout (``<p>`` = ``<key_prefix>:<queue name>``)::

    <p>:id            INCR counter for job ids and enqueue order
    <p>:job:<id>      HASH  name, data, options, priority, attempts_made, ...
    <p>:wait          ZSET  id → priority * 10^10 + enqueue order
    <p>:delayed       ZSET  id → epoch ms when the retry becomes ready
    <p>:active        ZSET  id → epoch ms when it was claimed
    <p>:lock:<id>     STRING owner token with PX expiry, renewed by its owner
    <p>:paused        STRING present while the queue is paused
    <p>:stalled-check STRING with PX expiry, one stall sweep per interval

Requires a client created with ``decode_responses=True`` or a URL.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any

import redis

from jobspine.errors import QueueError
from jobspine.models import Job, JobState, Priority, now_ms, utcnow
from jobspine.queue.protocol import StalledJob, retry_delay_ms

logger = logging.getLogger(__name__)

_ORDER_SCALE = 10**10


class RedisQueue:
    """``QueueBackend`` over a Redis server.

    Example:
        >>> queue = RedisQueue.from_url("redis://127.0.0.1:6379/0", queue_name="bgjobs")
        >>> job = queue.submit("echo", {"handler": "echo"}, {"priority": 5})
    """

    name = "redis"

    def __init__(
        self,
        client: redis.Redis,
        queue_name: str,
        *,
        key_prefix: str = "jobspine",
        lock_duration_ms: int = 30000,
        stalled_interval_ms: int = 30000,
        max_stalled_count: int = 1,
        poll_interval_ms: int = 100,
    ) -> None:
        self.client = client
        self.queue_name = queue_name
        self.lock_duration_ms = lock_duration_ms
        self.stalled_interval_ms = stalled_interval_ms
        self.max_stalled_count = max_stalled_count
        self.poll_interval_ms = poll_interval_ms
        self._prefix = f"{key_prefix}:{queue_name}"
        self._token = uuid.uuid4().hex

    @classmethod
    def from_url(cls, url: str, queue_name: str, **kwargs: Any) -> RedisQueue:
        return cls(redis.Redis.from_url(url, decode_responses=True), queue_name, **kwargs)

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix, *parts))

    # === Producer side ===

    def submit(self, name: str, data: dict[str, Any], options: dict[str, Any]) -> Job:
        priority = int(options.get("priority", Priority.MEDIUM))
        try:
            order = self.client.incr(self._key("id"))
            job = Job(
                id=str(order),
                name=name,
                data=dict(data),
                priority=priority,
                options=dict(options),
            )
            pipe = self.client.pipeline()
            pipe.hset(self._key("job", job.id), mapping=_to_hash(job))
            pipe.zadd(self._key("wait"), {job.id: priority * _ORDER_SCALE + order})
            pipe.execute()
        except redis.RedisError as e:
            raise QueueError("Could not submit job", cause=e).with_context(job_name=name) from e
        return job

    # === Consumer side ===

    def claim(self, timeout: float = 0.0) -> Job | None:
        deadline = time.monotonic() + max(timeout, 0.0)
        while True:
            job = self._claim_once()
            if job is not None:
                return job
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(remaining, self.poll_interval_ms / 1000))

    def _claim_once(self) -> Job | None:
        try:
            self._promote_delayed()
            if self.client.exists(self._key("paused")):
                return None
            popped = self.client.zpopmin(self._key("wait"))
            if not popped:
                return None
            job_id = _text(popped[0][0])
            started = utcnow()
            pipe = self.client.pipeline()
            pipe.zadd(self._key("active"), {job_id: now_ms()})
            pipe.set(self._key("lock", job_id), self._token, px=self.lock_duration_ms)
            pipe.hset(self._key("job", job_id), mapping={
                "state": JobState.ACTIVE.value,
                "started_at": started.isoformat(),
            })
            pipe.execute()
            return self._load(job_id)
        except redis.RedisError as e:
            raise QueueError("Could not claim job", cause=e) from e

    def extend_lock(self, job: Job) -> bool:
        """Renew the job lock if this queue still owns it."""
        lock_key = self._key("lock", job.id)
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(lock_key)
                if _text(pipe.get(lock_key) or "") != self._token:
                    return False
                pipe.multi()
                pipe.set(lock_key, self._token, px=self.lock_duration_ms, xx=True)
                return bool(pipe.execute()[0])
            except redis.WatchError:
                return False

    def ack_success(self, job: Job, result: Any = None) -> None:
        if not self.client.zrem(self._key("active"), job.id):
            logger.warning("Completed job %s is no longer active", job.id)
            return
        pipe = self.client.pipeline()
        pipe.delete(self._key("lock", job.id))
        pipe.delete(self._key("job", job.id))
        pipe.execute()

    def ack_failure(self, job: Job, error: BaseException) -> bool:
        if not self.client.zrem(self._key("active"), job.id):
            logger.warning("Failed job %s is no longer active", job.id)
            return False
        job_key = self._key("job", job.id)
        attempts_made = self.client.hincrby(job_key, "attempts_made", 1)
        delay_ms = retry_delay_ms(job.options, attempts_made)

        pipe = self.client.pipeline()
        pipe.delete(self._key("lock", job.id))
        if delay_ms is None:
            pipe.delete(job_key)
            pipe.execute()
            return False

        pipe.hset(job_key, mapping={
            "state": JobState.QUEUED.value,
            "finished_at": utcnow().isoformat(),
            "failed_reason": str(error),
        })
        if delay_ms:
            pipe.zadd(self._key("delayed"), {job.id: now_ms() + delay_ms})
        else:
            pipe.zadd(self._key("wait"), {job.id: self._wait_score(job.priority)})
        pipe.execute()
        return True

    def check_stalled(self) -> list[StalledJob]:
        # One sweep per interval across all processes sharing the queue
        if not self.client.set(self._key("stalled-check"), self._token, px=self.stalled_interval_ms, nx=True):
            return []

        stalled: list[StalledJob] = []
        for raw_id in self.client.zrange(self._key("active"), 0, -1):
            job_id = _text(raw_id)
            if self.client.exists(self._key("lock", job_id)):
                continue
            if not self.client.zrem(self._key("active"), job_id):
                continue  # acked meanwhile
            job = self._load(job_id)
            if job is None:
                continue
            job_key = self._key("job", job_id)
            count = self.client.hincrby(job_key, "stalled_count", 1)
            if count > self.max_stalled_count:
                self.client.delete(job_key)
                stalled.append(StalledJob(job=job, recovered=False))
                continue
            pipe = self.client.pipeline()
            pipe.hset(job_key, "state", JobState.QUEUED.value)
            pipe.zadd(self._key("wait"), {job_id: self._wait_score(job.priority)})
            pipe.execute()
            job.state = JobState.QUEUED
            stalled.append(StalledJob(job=job, recovered=True))
        return stalled

    # === Inspection ===

    def get_active(self) -> list[Job]:
        return self._load_many(self.client.zrange(self._key("active"), 0, -1))

    def get_waiting(self) -> list[Job]:
        ready = self.client.zrange(self._key("wait"), 0, -1)
        delayed = self.client.zrange(self._key("delayed"), 0, -1)
        return self._load_many([*ready, *delayed])

    # === Administration ===

    def pause(self) -> None:
        self.client.set(self._key("paused"), "1")

    def resume(self) -> None:
        self.client.delete(self._key("paused"))

    def is_paused(self) -> bool:
        return bool(self.client.exists(self._key("paused")))

    def empty(self) -> int:
        ids = [
            _text(raw)
            for raw in [
                *self.client.zrange(self._key("wait"), 0, -1),
                *self.client.zrange(self._key("delayed"), 0, -1),
            ]
        ]
        pipe = self.client.pipeline()
        pipe.delete(self._key("wait"), self._key("delayed"))
        for job_id in ids:
            pipe.delete(self._key("job", job_id))
        pipe.execute()
        return len(ids)

    def close(self) -> None:
        self.client.close()

    # === Internals ===

    def _wait_score(self, priority: int) -> int:
        return priority * _ORDER_SCALE + self.client.incr(self._key("id"))

    def _promote_delayed(self) -> None:
        ready = self.client.zrangebyscore(self._key("delayed"), "-inf", now_ms())
        for raw_id in ready:
            job_id = _text(raw_id)
            # zrem decides which process moves the job
            if self.client.zrem(self._key("delayed"), job_id):
                priority = self.client.hget(self._key("job", job_id), "priority")
                self.client.zadd(self._key("wait"), {job_id: self._wait_score(int(priority or Priority.MEDIUM))})

    def _load(self, job_id: str) -> Job | None:
        raw = self.client.hgetall(self._key("job", job_id))
        if not raw:
            return None
        return _from_hash(job_id, {_text(k): _text(v) for k, v in raw.items()})

    def _load_many(self, raw_ids: list[Any]) -> list[Job]:
        jobs = [self._load(_text(raw_id)) for raw_id in raw_ids]
        return [job for job in jobs if job is not None]


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def _to_hash(job: Job) -> dict[str, Any]:
    return {
        "name": job.name,
        "data": json.dumps(job.data, default=str),
        "options": json.dumps(job.options, default=str),
        "priority": int(job.priority),
        "attempts_made": job.attempts_made,
        "state": job.state.value,
        "enqueued_at": job.enqueued_at.isoformat(),
    }


def _from_hash(job_id: str, raw: dict[str, str]) -> Job:
    return Job(
        id=job_id,
        name=raw["name"],
        data=json.loads(raw.get("data", "{}")),
        priority=int(raw.get("priority", Priority.MEDIUM)),
        attempts_made=int(raw.get("attempts_made", 0)),
        state=JobState(raw.get("state", JobState.QUEUED.value)),
        options=json.loads(raw.get("options", "{}")),
        enqueued_at=datetime.fromisoformat(raw["enqueued_at"]),
        started_at=datetime.fromisoformat(raw["started_at"]) if raw.get("started_at") else None,
        finished_at=datetime.fromisoformat(raw["finished_at"]) if raw.get("finished_at") else None,
    )
