"""
Shared pytest fixtures for jobspine tests.

This module provides:
- RecordingLogger, an EventLogger double that keeps every event in a list
- Engine factories over the in-memory queue with short intervals
- fakeredis clients for the Redis-backed queue and monitoring store
- wait_until() for tests that wait on the worker thread
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from typing import Any

import fakeredis
import pytest

from jobspine.engine import JobEngine
from jobspine.settings import EngineSettings


class RecordingLogger:
    """Event logger that records ``(level, kind, fields)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, kind: str, fields: Any = None) -> None:
        self.events.append(("info", kind, dict(fields or {})))

    def warn(self, kind: str, fields: Any = None) -> None:
        self.events.append(("warn", kind, dict(fields or {})))

    def error(self, kind: str, fields: Any = None) -> None:
        self.events.append(("error", kind, dict(fields or {})))

    def of_kind(self, kind: str) -> list[dict[str, Any]]:
        return [fields for _, k, fields in self.events if k == kind]

    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.events]


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.02) -> bool:
    """Poll *predicate* until it is true or *timeout* seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def recorder() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def fast_settings() -> EngineSettings:
    """Settings with intervals short enough for tests."""
    return EngineSettings(
        poll_interval_ms=20,
        lock_duration_ms=5000,
        lock_renew_ms=100,
        stalled_interval_ms=100,
        history_limit=1000,
    )


@pytest.fixture
def make_engine(recorder, fast_settings) -> Iterator[Callable[..., JobEngine]]:
    """Factory for engines on ``memory://``. Every engine is closed on teardown."""
    engines: list[JobEngine] = []

    def _make(jobs: list[Any], connection: Any = "memory://", name: str = "bgjobs", **kwargs: Any) -> JobEngine:
        kwargs.setdefault("settings", fast_settings)
        kwargs.setdefault("logger", recorder)
        engine = JobEngine(name=name, connection=connection, jobs=jobs, **kwargs)
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.close()


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(name="wait_until")
def wait_until_fixture() -> Callable[..., bool]:
    return wait_until
