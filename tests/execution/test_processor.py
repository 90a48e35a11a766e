"""Tests for the claim loop and per-job processing."""

import asyncio
import threading
import time

import pytest

from jobspine.execution.processor import ProcessingEngine
from jobspine.models import Outcome, Priority
from jobspine.monitoring import MemoryMonitoringStore


def by_name(engine):
    return {record["name"]: record for record in engine.get_data()}


class TestProcessJob:
    """One claimed job through ``ProcessingEngine.process_job``."""

    def test_completed(self, make_engine, recorder):
        engine = make_engine([{"name": "echo", "handler": lambda job: {"echo": job.data}}])
        queued = engine.add("echo", {"x": 1})
        job = engine.backend.claim()

        race = engine.processor.process_job(job)

        assert race.outcome is Outcome.COMPLETED
        [started] = recorder.of_kind("job_started")
        assert started == {"job_id": queued.id, "attempt": 0, "name": "echo", "data": {"x": 1}}
        [processed] = recorder.of_kind("job_processed")
        assert processed["result"] == {"echo": {"x": 1}}
        assert processed["duration"] >= 0
        assert engine.list() == []

    def test_failed(self, make_engine, recorder):
        def explode(job):
            raise ValueError("kaboom")

        engine = make_engine([{"name": "explode", "handler": explode}])
        engine.add("explode")
        race = engine.processor.process_job(engine.backend.claim())

        assert race.outcome is Outcome.FAILED
        [errored] = recorder.of_kind("job_errored")
        assert errored["error_message"] == "kaboom"
        assert errored["error_type"] == "ValueError"
        assert "Traceback" in errored["error_stack"]
        assert by_name(engine)["explode"]["stats"]["failed"] == 1

    def test_timed_out(self, make_engine, recorder):
        release = threading.Event()
        engine = make_engine([
            {"name": "slow", "handler": lambda job: release.wait(5) and "late", "options": {"timeout_ms": 50}},
        ])
        engine.add("slow")
        try:
            race = engine.processor.process_job(engine.backend.claim())
        finally:
            release.set()

        assert race.outcome is Outcome.TIMED_OUT
        [timeout] = recorder.of_kind("job_timeout")
        assert timeout["duration"] == 50
        assert timeout["timeout_ms"] == 50
        stats = by_name(engine)["slow"]
        assert stats["history"][0][:2] == [50, "timed_out"]

    def test_late_completion_is_not_counted(self, make_engine, recorder):
        """A handler that finishes after its deadline stays counted once, as timed out."""
        release = threading.Event()
        engine = make_engine([
            {"name": "slow", "handler": lambda job: release.wait(5) and "late", "options": {"timeout_ms": 50}},
        ])
        engine.add("slow")
        try:
            race = engine.processor.process_job(engine.backend.claim())
        finally:
            release.set()

        assert race.future.result(timeout=1) == "late"
        assert len(recorder.of_kind("job_timeout")) == 1
        assert recorder.of_kind("job_processed") == []
        stats = by_name(engine)["slow"]["stats"]
        assert (stats["timed_out"], stats["completed"], stats["active"]) == (1, 0, 0)
        assert len(by_name(engine)["slow"]["history"]) == 1

    def test_async_handler(self, make_engine, recorder):
        async def handler(job):
            await asyncio.sleep(0.01)
            return job.name

        engine = make_engine([{"name": "coro", "handler": handler}])
        engine.add("coro")
        race = engine.processor.process_job(engine.backend.claim())
        assert race.outcome is Outcome.COMPLETED
        assert race.result == "coro"

    def test_unknown_name_is_not_acked(self, make_engine, recorder):
        engine = make_engine([{"name": "echo", "handler": lambda job: None}])
        engine.backend.submit("ghost", {"handler": "ghost"}, {})
        job = engine.backend.claim()

        assert engine.processor.process_job(job) is None
        assert recorder.of_kind("job_not_found") == [{"name": "ghost", "job_id": job.id}]
        assert [j.id for j in engine.backend.get_active()] == [job.id]

    def test_handler_can_add_jobs(self, make_engine):
        def fan_out(job):
            job.add("echo", {"from": job.id})

        engine = make_engine([
            {"name": "fan_out", "handler": fan_out},
            {"name": "echo", "handler": lambda job: None},
        ])
        parent = engine.add("fan_out")
        engine.processor.process_job(engine.backend.claim())

        [child] = engine.list()
        assert child.data == {"from": parent.id, "handler": "echo"}

    def test_handler_logs_with_correlation(self, make_engine, recorder):
        engine = make_engine([{"name": "chatty", "handler": lambda job: job.info("working", {"step": 1})}])
        queued = engine.add("chatty")
        engine.processor.process_job(engine.backend.claim())

        [event] = recorder.of_kind("working")
        assert event["job_id"] == queued.id
        assert event["message_data"] == {"step": 1}

    def test_retry_counts(self, make_engine):
        attempts = []

        def flaky(job):
            attempts.append(job.attempt)
            if job.attempt == 0:
                raise RuntimeError("first try fails")
            return "ok"

        engine = make_engine([{"name": "flaky", "handler": flaky, "options": {"attempts": 2}}])
        engine.add("flaky")
        engine.processor.process_job(engine.backend.claim())
        engine.processor.process_job(engine.backend.claim())

        assert attempts == [0, 1]
        stats = by_name(engine)["flaky"]["stats"]
        assert (stats["queued"], stats["active"], stats["failed"], stats["completed"]) == (0, 0, 1, 1)

    def test_lock_renewed_while_running(self, make_engine):
        engine = make_engine([{"name": "slow", "handler": lambda job: time.sleep(0.35)}])
        renewals = []
        original = engine.backend.extend_lock

        def tracking(job):
            renewals.append(job.id)
            return original(job)

        engine.backend.extend_lock = tracking
        engine.add("slow")
        engine.processor.process_job(engine.backend.claim())
        assert len(renewals) >= 2


class TestClaimLoop:
    """The worker thread started by ``JobEngine.process()``."""

    def test_processes_in_priority_order(self, make_engine, wait_until):
        seen = []
        engine = make_engine([
            {"name": "low", "handler": lambda job: seen.append("low"), "options": {"priority": Priority.LOW}},
            {"name": "high", "handler": lambda job: seen.append("high"), "options": {"priority": Priority.HIGH}},
            {"name": "medium", "handler": lambda job: seen.append("medium")},
        ])
        engine.add("low")
        engine.add("medium")
        engine.add("high")
        engine.process()

        assert wait_until(lambda: len(seen) == 3)
        assert seen == ["high", "medium", "low"]

    def test_one_job_at_a_time(self, make_engine, wait_until):
        running = []
        overlap = []
        lock = threading.Lock()

        def handler(job):
            with lock:
                running.append(job.id)
                if len(running) > 1:
                    overlap.append(list(running))
            time.sleep(0.02)
            with lock:
                running.remove(job.id)

        engine = make_engine([{"name": "work", "handler": handler}])
        for _ in range(5):
            engine.add("work")
        engine.process()

        assert wait_until(lambda: engine.processor.processed == 5)
        assert overlap == []

    def test_process_is_idempotent(self, make_engine, recorder):
        engine = make_engine([{"name": "echo", "handler": lambda job: None}])
        engine.process()
        engine.process()
        assert len(recorder.of_kind("worker_started")) == 1

    def test_handler_errors_do_not_stop_loop(self, make_engine, wait_until):
        def explode(job):
            raise RuntimeError("boom")

        engine = make_engine([
            {"name": "explode", "handler": explode},
            {"name": "echo", "handler": lambda job: "ok"},
        ])
        engine.add("explode")
        engine.add("echo")
        engine.process()

        assert wait_until(lambda: engine.processor.processed == 2)
        stats = by_name(engine)
        assert stats["explode"]["stats"]["failed"] == 1
        assert stats["echo"]["stats"]["completed"] == 1

    def test_queue_errors_are_logged(self, recorder, wait_until):
        class BrokenQueue:
            name = "broken"

            def claim(self, timeout=0.0):
                raise ConnectionError("gone")

        engine = ProcessingEngine(
            registry=None,
            backend=BrokenQueue(),
            monitoring=None,
            events=recorder,
            dispatcher=None,
            poll_interval_ms=10,
        )
        engine.start()
        try:
            assert wait_until(lambda: len(recorder.of_kind("queue_error")) >= 2)
        finally:
            engine.stop()
        assert recorder.of_kind("queue_error")[0]["error_type"] == "ConnectionError"

    def test_monitoring_errors_do_not_stop_loop(self, make_engine, recorder, wait_until):
        """A store failure while handling one job is reported and the loop keeps claiming."""

        class FlakyStore(MemoryMonitoringStore):
            failures = 1

            def record_claimed(self, name, attempts_made=0):
                if self.failures:
                    self.failures -= 1
                    raise ConnectionError("redis blip")
                super().record_claimed(name, attempts_made)

        seen = []
        engine = make_engine(
            [{"name": "echo", "handler": lambda job: seen.append(job.data["n"])}],
            monitoring=FlakyStore(),
        )
        first = engine.add("echo", {"n": 1})
        engine.process()
        assert wait_until(lambda: recorder.of_kind("queue_error"))
        engine.add("echo", {"n": 2})

        assert wait_until(lambda: seen == [2])
        assert engine.processor.is_running
        [error] = recorder.of_kind("queue_error")
        assert error["job_id"] == first.id
        assert error["error_type"] == "ConnectionError"
        assert error["error_message"] == "redis blip"

    def test_failing_event_logger_does_not_stop_loop(self, make_engine, wait_until):
        class ExplodingLogger:
            def info(self, kind, fields=None):
                if kind == "job_started":
                    raise RuntimeError("logger down")

            def warn(self, kind, fields=None):
                pass

            def error(self, kind, fields=None):
                raise RuntimeError("logger down")

        seen = []
        engine = make_engine(
            [{"name": "echo", "handler": lambda job: seen.append(job.id)}],
            logger=ExplodingLogger(),
        )
        engine.add("echo")
        engine.process()
        time.sleep(0.1)

        assert engine.processor.is_running
        assert seen == []

    @pytest.mark.slow
    def test_timeout_scenario(self, make_engine, recorder):
        """A 2 s handler with a 1 s deadline is reported once as timed out and leaves the queue."""
        engine = make_engine([
            {"name": "echo", "handler": lambda job: time.sleep(2), "options": {"timeout_ms": 1000}},
        ])
        engine.add("echo", {"x": 1})
        engine.process()
        time.sleep(1.5)

        assert engine.list() == []
        assert len(recorder.of_kind("job_timeout")) == 1
        assert recorder.of_kind("job_processed") == []

        time.sleep(0.8)
        stats = by_name(engine)["echo"]["stats"]
        assert (stats["timed_out"], stats["completed"]) == (1, 0)
        assert len(recorder.of_kind("job_timeout")) == 1
        assert recorder.of_kind("job_processed") == []
