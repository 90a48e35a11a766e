"""Tests for the handler deadline race."""

import asyncio
import threading
import time

from jobspine.errors import JobTimeoutError
from jobspine.execution.timeout import Deadline, run_with_deadline, start_handler
from jobspine.models import Outcome


class TestDeadline:
    def test_no_timeout_never_expires(self):
        deadline = Deadline(None)
        assert deadline.remaining() is None
        assert deadline.is_expired() is False

    def test_zero_timeout_means_unbounded(self):
        assert Deadline(0).deadline is None

    def test_expired(self):
        deadline = Deadline(10, start_time=time.monotonic() - 1.0)
        assert deadline.is_expired() is True
        assert deadline.remaining() < 0
        assert deadline.elapsed_ms >= 1000


class TestStartHandler:
    def test_sync_result(self):
        future = start_handler(lambda ctx: ctx * 2, 21)
        assert future.result(timeout=1.0) == 42

    def test_coroutine_driven_to_completion(self):
        async def handler(ctx):
            await asyncio.sleep(0.01)
            return "async"

        assert start_handler(handler, None).result(timeout=1.0) == "async"

    def test_exception_settles_future(self):
        def handler(ctx):
            raise ValueError("bad")

        assert isinstance(start_handler(handler, None).exception(timeout=1.0), ValueError)


class TestRunWithDeadline:
    """Whichever of handler and deadline settles first decides the outcome."""

    def test_completed(self):
        race = run_with_deadline(lambda ctx: {"ok": True}, None, 1000)
        assert race.outcome is Outcome.COMPLETED
        assert race.result == {"ok": True}
        assert race.error is None
        assert 0 <= race.duration_ms < 1000

    def test_failed(self):
        def handler(ctx):
            raise RuntimeError("boom")

        race = run_with_deadline(handler, None, 1000)
        assert race.outcome is Outcome.FAILED
        assert str(race.error) == "boom"

    def test_async_failure(self):
        async def handler(ctx):
            raise RuntimeError("async boom")

        race = run_with_deadline(handler, None, 1000)
        assert race.outcome is Outcome.FAILED
        assert str(race.error) == "async boom"

    def test_timed_out_reports_timeout_as_duration(self):
        release = threading.Event()
        race = run_with_deadline(lambda ctx: release.wait(5), None, 50)
        try:
            assert race.outcome is Outcome.TIMED_OUT
            assert race.duration_ms == 50
            assert isinstance(race.error, JobTimeoutError)
            assert race.error.timeout_ms == 50
            assert str(race.error) == "Job processing timed out after 50 ms"
        finally:
            release.set()

    def test_handler_keeps_running_after_timeout(self):
        """The late result is dropped, but the handler is not cancelled."""
        finished = threading.Event()

        def handler(ctx):
            time.sleep(0.15)
            finished.set()
            return "late"

        race = run_with_deadline(handler, None, 30)
        assert race.outcome is Outcome.TIMED_OUT
        assert finished.wait(1.0)
        assert race.future.result(timeout=1.0) == "late"

    def test_no_timeout_waits_for_handler(self):
        race = run_with_deadline(lambda ctx: time.sleep(0.05) or "done", None, None)
        assert race.outcome is Outcome.COMPLETED
        assert race.duration_ms >= 40

    def test_heartbeat_called_while_waiting(self):
        beats = []
        race = run_with_deadline(
            lambda ctx: time.sleep(0.2),
            None,
            None,
            heartbeat=lambda: beats.append(1),
            heartbeat_interval_ms=30,
        )
        assert race.outcome is Outcome.COMPLETED
        assert len(beats) >= 3
