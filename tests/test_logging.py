"""Tests for structured logging setup and the event logger contract."""

import json
import logging

import pytest
import structlog

from jobspine.errors import ConfigurationError
from jobspine.logging import (
    EventLogger,
    StructlogEventLogger,
    bound_job_context,
    configure_logging,
    is_configured,
    validate_event_logger,
)


@pytest.fixture
def captured():
    with structlog.testing.capture_logs() as logs:
        yield logs


class TestValidateEventLogger:
    def test_accepts_any_object_with_methods(self, recorder):
        assert validate_event_logger(recorder) is recorder
        assert isinstance(recorder, EventLogger)

    def test_rejects_none(self):
        with pytest.raises(ConfigurationError):
            validate_event_logger(None)

    def test_rejects_non_callable_method(self):
        class Broken:
            info = "not callable"

            def warn(self, kind, fields):
                pass

            def error(self, kind, fields):
                pass

        with pytest.raises(ConfigurationError) as exc_info:
            validate_event_logger(Broken())
        assert exc_info.value.context.metadata["missing"] == ["info"]


class TestStructlogEventLogger:
    def test_kind_becomes_event(self, captured):
        StructlogEventLogger(engine="bgjobs").info("job_queued", {"name": "echo", "data": {"x": 1}})
        [entry] = captured
        assert entry["event"] == "job_queued"
        assert entry["name"] == "echo"
        assert entry["engine"] == "bgjobs"
        assert entry["log_level"] == "info"

    def test_warn_maps_to_warning(self, captured):
        StructlogEventLogger().warn("job_stalled", {"job_id": "1"})
        assert captured[0]["log_level"] == "warning"

    def test_reserved_event_field_renamed(self, captured):
        StructlogEventLogger().error("job_errored", {"event": "clash"})
        assert captured[0]["event"] == "job_errored"
        assert captured[0]["event_data"] == "clash"

    def test_fields_optional(self, captured):
        StructlogEventLogger().info("worker_started")
        assert captured[0]["event"] == "worker_started"


class TestBoundJobContext:
    def test_binds_and_unbinds(self):
        with bound_job_context("7", "echo", 1):
            assert structlog.contextvars.get_contextvars() == {"job_id": "7", "job_name": "echo", "attempt": 1}
        assert "job_id" not in structlog.contextvars.get_contextvars()


class TestConfigureLogging:
    def test_json_output_includes_context(self, capsys):
        configure_logging(level="INFO", format="json", force=True)
        try:
            assert is_configured()
            with bound_job_context("7", "echo", 0):
                structlog.get_logger("jobspine").info("job_started", name="echo")
            line = capsys.readouterr().err.strip().splitlines()[-1]
            entry = json.loads(line)
            assert entry["event"] == "job_started"
            assert entry["job_id"] == "7"
            assert entry["level"] == "info"
        finally:
            structlog.reset_defaults()
            logging.getLogger().handlers.clear()

    def test_second_call_is_noop_without_force(self):
        configure_logging(level="INFO", format="console", force=True)
        try:
            configure_logging(level="DEBUG")
            assert logging.getLogger().level == logging.INFO
        finally:
            structlog.reset_defaults()
            logging.getLogger().handlers.clear()
