"""Backing queue stores.

``connect()`` turns an engine's connection descriptor into a ``QueueBackend``:

- ``"memory://"``            → new :class:`MemoryQueue`
- ``"redis://..."`` URL      → :class:`RedisQueue` on a new client
- a ``redis.Redis`` client   → :class:`RedisQueue` on that client
- any ``QueueBackend``       → used as is
"""

from __future__ import annotations

from typing import Any

import redis as redis_client

from jobspine.errors import ConfigurationError
from jobspine.queue.memory import MemoryQueue
from jobspine.queue.protocol import QueueBackend, StalledJob, retry_delay_ms
from jobspine.queue.redis import RedisQueue
from jobspine.settings import EngineSettings

MEMORY_URL = "memory://"


def connect(connection: Any, queue_name: str, settings: EngineSettings) -> QueueBackend:
    """Resolve a connection descriptor into a backing queue.

    Raises:
        ConfigurationError: If the descriptor is missing or unsupported.
    """
    if connection is None or connection == "":
        raise ConfigurationError("A connection for the backing queue is required")

    if isinstance(connection, str):
        if connection == MEMORY_URL:
            return MemoryQueue(
                lock_duration_ms=settings.lock_duration_ms,
                max_stalled_count=settings.max_stalled_count,
            )
        if connection.startswith(("redis://", "rediss://", "unix://")):
            return RedisQueue.from_url(connection, queue_name, **_redis_options(settings))
        raise ConfigurationError(f"Unsupported connection URL: {connection}")

    if isinstance(connection, redis_client.Redis):
        return RedisQueue(connection, queue_name, **_redis_options(settings))

    if isinstance(connection, QueueBackend):
        return connection

    raise ConfigurationError(f"Unsupported connection type: {type(connection).__name__}")


def _redis_options(settings: EngineSettings) -> dict[str, Any]:
    return {
        "key_prefix": settings.key_prefix,
        "lock_duration_ms": settings.lock_duration_ms,
        "stalled_interval_ms": settings.stalled_interval_ms,
        "max_stalled_count": settings.max_stalled_count,
    }


__all__ = [
    "MEMORY_URL",
    "MemoryQueue",
    "QueueBackend",
    "RedisQueue",
    "StalledJob",
    "connect",
    "retry_delay_ms",
]
