"""Tests for JobEngine construction and its public operations."""

import pytest

from jobspine import JobEngine
from jobspine.errors import ConfigurationError, JobNotFoundError
from jobspine.logging import StructlogEventLogger
from jobspine.models import Priority
from jobspine.monitoring import MemoryMonitoringStore, RedisMonitoringStore
from jobspine.queue import MemoryQueue, RedisQueue


def noop(job):
    return None


JOBS = [{"name": "echo", "handler": noop}]


class TestConstruction:
    """Configuration errors surface synchronously."""

    @pytest.mark.parametrize("name", [None, "", "   ", 42])
    def test_invalid_name(self, name, recorder):
        with pytest.raises(ConfigurationError, match="Please supply `name`, `connection`, `jobs` & `logger`"):
            JobEngine(name=name, connection="memory://", jobs=JOBS, logger=recorder)

    @pytest.mark.parametrize("jobs", [None, [], "echo", {"name": "echo", "handler": noop}])
    def test_invalid_jobs(self, jobs, recorder):
        with pytest.raises(ConfigurationError):
            JobEngine(name="bgjobs", connection="memory://", jobs=jobs, logger=recorder)

    def test_missing_connection(self, recorder):
        with pytest.raises(ConfigurationError):
            JobEngine(name="bgjobs", connection=None, jobs=JOBS, logger=recorder)

    def test_invalid_definition(self, recorder):
        with pytest.raises(ConfigurationError, match="needs a handler function"):
            JobEngine(name="bgjobs", connection="memory://", jobs=[{"name": "echo"}], logger=recorder)

    @pytest.mark.parametrize("schedule", ["evry day", "61 * * * *", 60])
    def test_invalid_schedule(self, schedule, recorder):
        """A malformed schedule rejects the whole engine, not just schedule()."""
        jobs = [
            {"name": "echo", "handler": noop},
            {"name": "tick", "handler": noop, "schedule": schedule},
        ]
        with pytest.raises(ConfigurationError) as exc_info:
            JobEngine(name="bgjobs", connection="memory://", jobs=jobs, logger=recorder)
        assert exc_info.value.context.job_name == "tick"
        assert recorder.events == []

    def test_logger_missing_methods(self):
        class Incomplete:
            def info(self, kind, fields):
                pass

        with pytest.raises(ConfigurationError) as exc_info:
            JobEngine(name="bgjobs", connection="memory://", jobs=JOBS, logger=Incomplete())
        assert exc_info.value.context.metadata["missing"] == ["warn", "error"]

    def test_default_logger_is_structlog(self):
        with JobEngine(name="bgjobs", connection="memory://", jobs=JOBS) as engine:
            assert isinstance(engine.events, StructlogEventLogger)

    def test_logs_queue_connected(self, make_engine, recorder):
        make_engine(JOBS)
        assert recorder.of_kind("queue_connected") == [{"queue": "bgjobs", "backend": "memory"}]

    def test_memory_connection_uses_memory_monitoring(self, make_engine):
        engine = make_engine(JOBS)
        assert isinstance(engine.backend, MemoryQueue)
        assert isinstance(engine.monitoring, MemoryMonitoringStore)

    def test_redis_connection_uses_redis_monitoring(self, make_engine, redis_client):
        engine = make_engine(JOBS, connection=redis_client)
        assert isinstance(engine.backend, RedisQueue)
        assert isinstance(engine.monitoring, RedisMonitoringStore)
        assert engine.monitoring.prefix == "jobspine:monit:"

    def test_explicit_monitoring_store(self, make_engine):
        store = MemoryMonitoringStore()
        assert make_engine(JOBS, monitoring=store).monitoring is store

    def test_shared_backend_between_engines(self, make_engine):
        queue = MemoryQueue()
        producer = make_engine(JOBS, connection=queue)
        consumer = make_engine(JOBS, connection=queue)
        producer.add("echo")
        assert len(consumer.list()) == 1

    def test_priorities(self):
        assert JobEngine.PRIORITIES == {"HIGH": 5, "MEDIUM": 10, "LOW": 20}


class TestProducerApi:
    def test_add_and_list(self, make_engine):
        engine = make_engine(JOBS)
        engine.add("echo", {"a": 1})
        engine.add("echo", {"a": 2})
        assert [job.payload for job in engine.list()] == [{"a": 1}, {"a": 2}]

    def test_two_enqueues_of_same_name_both_listed(self, make_engine):
        engine = make_engine(JOBS)
        first = engine.add("echo")
        second = engine.add("echo")
        assert first.id != second.id
        assert {job.id for job in engine.list()} == {first.id, second.id}

    def test_add_unknown(self, make_engine, recorder):
        engine = make_engine(JOBS)
        with pytest.raises(JobNotFoundError):
            engine.add("missing")
        assert recorder.of_kind("job_not_found") == [{"name": "missing"}]


class TestAdministration:
    def test_pause_and_resume(self, make_engine, wait_until):
        processed = []
        engine = make_engine([{"name": "echo", "handler": lambda job: processed.append(job.id)}])
        engine.pause()
        engine.process()
        engine.add("echo")

        assert not wait_until(lambda: processed, timeout=0.2)
        assert engine.health()["paused"] is True

        engine.resume()
        assert wait_until(lambda: processed)

    def test_flush(self, make_engine):
        engine = make_engine(JOBS)
        engine.add("echo")
        engine.add("echo")
        assert engine.flush() == 2
        assert engine.list() == []

    def test_close_logs_and_stops(self, recorder):
        engine = JobEngine(
            name="bgjobs",
            connection="memory://",
            jobs=[{"name": "echo", "handler": noop, "schedule": "every day"}],
            logger=recorder,
        )
        engine.process()
        engine.schedule()
        engine.close()

        assert not engine.processor.is_running
        assert not engine.scheduler.is_running
        assert recorder.kinds()[-1] == "queue_closed"


class TestMonitoringData:
    def test_get_data_shape(self, make_engine, wait_until):
        engine = make_engine([
            {"name": "echo", "handler": noop},
            {"name": "boom", "handler": lambda job: 1 / 0},
        ])
        engine.add("echo")
        engine.add("boom")
        engine.process()
        assert wait_until(lambda: engine.processor.processed == 2)

        data = {record["name"]: record for record in engine.get_data()}
        assert data["echo"]["stats"] == {
            "queued": 0,
            "active": 0,
            "completed": 1,
            "timed_out": 0,
            "failed": 0,
            "total": 1,
        }
        assert data["boom"]["stats"]["failed"] == 1
        duration, status, timestamp = data["boom"]["history"][0]
        assert status == "failed"

    def test_counter_sum_matches_enqueues(self, make_engine, wait_until):
        engine = make_engine([
            {"name": "a", "handler": noop, "options": {"priority": Priority.HIGH}},
            {"name": "b", "handler": noop},
        ])
        for _ in range(3):
            engine.add("a")
            engine.add("b")
        engine.process()
        assert wait_until(lambda: engine.processor.processed == 6)
        assert sum(record["stats"]["total"] for record in engine.get_data()) == 6

    def test_health(self, make_engine):
        engine = make_engine(JOBS)
        health = engine.health()
        assert health["name"] == "bgjobs"
        assert health["backend"] == "memory"
        assert health["processing"] is False
        assert health["scheduler"]["healthy"] is False
