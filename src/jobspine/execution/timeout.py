"""Deadline race for handler execution.

Runs a handler while a deadline timer runs; whichever settles first decides
the reported outcome.

Architecture:
    ::

        ┌────────────────────────────────────────────────────────────────┐
        │ run_with_deadline(handler, ctx, timeout_ms, heartbeat=...)     │
        └────────────────────────────────────────────────────────────────┘
                              │
                ┌─────────────┴──────────────┐
                ▼                            ▼
        ┌──────────────────┐        ┌──────────────────────────────┐
        │ daemon thread    │        │ calling thread               │
        │  handler(ctx)    │ Future │  wait(future, slice)         │
        │  asyncio.run()   │ ─────► │  heartbeat() every slice     │
        │  if awaitable    │        │  deadline passed → TIMED_OUT │
        └──────────────────┘        └──────────────────────────────┘

Cooperative timeout:
    There is no cancellation. When the deadline wins, the handler's thread
    keeps running unsupervised and its eventual result or error is dropped.
    Only the reported outcome is "timed out". Handlers that must stop early
    have to watch the clock themselves.

Examples:
    >>> race = run_with_deadline(handler, ctx, timeout_ms=1000)
    >>> race.outcome
    <Outcome.COMPLETED: 'completed'>
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextvars
import inspect
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from jobspine.errors import JobTimeoutError
from jobspine.models import Outcome


@dataclass
class Deadline:
    """Deadline state for one attempt.

    Attributes:
        timeout_ms: The configured timeout, None for no deadline
        start_time: When the attempt started (monotonic clock)
    """

    timeout_ms: int | None
    start_time: float = field(default_factory=time.monotonic)

    @property
    def deadline(self) -> float | None:
        if not self.timeout_ms:
            return None
        return self.start_time + self.timeout_ms / 1000

    def remaining(self) -> float | None:
        """Seconds until the deadline, negative once expired, None without one."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def is_expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)


@dataclass
class RaceResult:
    """Reported outcome of one attempt."""

    outcome: Outcome
    duration_ms: int
    result: Any = None
    error: BaseException | None = None
    future: concurrent.futures.Future | None = field(default=None, repr=False)
    """The handler's future; still pending after a timeout"""


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def start_handler(handler: Callable[[Any], Any], ctx: Any) -> concurrent.futures.Future:
    """Run ``handler(ctx)`` on a daemon thread and return its future.

    Coroutine results are driven to completion with ``asyncio.run`` on that
    thread. The thread inherits the caller's contextvars (log correlation).
    """
    future: concurrent.futures.Future = concurrent.futures.Future()
    future.set_running_or_notify_cancel()
    context = contextvars.copy_context()

    def _target() -> None:
        try:
            result = handler(ctx)
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
        except BaseException as e:  # noqa: BLE001 - any exit settles the race
            future.set_exception(e)
        else:
            future.set_result(result)

    thread = threading.Thread(
        target=context.run,
        args=(_target,),
        daemon=True,
        name=f"jobspine-handler-{getattr(ctx, 'id', '')}",
    )
    thread.start()
    return future


def run_with_deadline(
    handler: Callable[[Any], Any],
    ctx: Any,
    timeout_ms: int | None,
    *,
    heartbeat: Callable[[], Any] | None = None,
    heartbeat_interval_ms: int = 15000,
) -> RaceResult:
    """Race a handler against its deadline.

    Args:
        handler: Sync or async callable taking *ctx*
        ctx: The per-attempt context passed to the handler
        timeout_ms: Deadline in ms; None or 0 lets the handler run unbounded
        heartbeat: Called every *heartbeat_interval_ms* while waiting
            (renews the backing queue lock)
        heartbeat_interval_ms: Interval between heartbeats

    Returns:
        COMPLETED with the result, FAILED with the handler's exception, or
        TIMED_OUT with a :class:`JobTimeoutError` and ``duration_ms == timeout_ms``.
    """
    deadline = Deadline(timeout_ms)
    future = start_handler(handler, ctx)

    while True:
        wait_for = heartbeat_interval_ms / 1000 if heartbeat else None
        remaining = deadline.remaining()
        if remaining is not None:
            wait_for = remaining if wait_for is None else min(wait_for, remaining)

        done, _ = concurrent.futures.wait([future], timeout=max(wait_for, 0) if wait_for is not None else None)
        if done:
            break
        if deadline.is_expired():
            return RaceResult(
                outcome=Outcome.TIMED_OUT,
                duration_ms=int(timeout_ms),
                error=JobTimeoutError(int(timeout_ms)),
                future=future,
            )
        if heartbeat is not None:
            heartbeat()

    duration_ms = deadline.elapsed_ms
    error = future.exception()
    if error is not None:
        return RaceResult(outcome=Outcome.FAILED, duration_ms=duration_ms, error=error, future=future)
    return RaceResult(outcome=Outcome.COMPLETED, duration_ms=duration_ms, result=future.result(), future=future)
