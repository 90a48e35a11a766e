"""Tests for the per-attempt job context."""

from unittest.mock import MagicMock

from jobspine.execution.context import JobContext
from jobspine.models import Job


def make_context(recorder, **overrides):
    job = Job(id="7", name="echo", data={"handler": "echo", "x": 1}, attempts_made=2)
    fields = {
        "id": job.id,
        "name": "echo",
        "data": {"x": 1},
        "attempt": job.attempts_made,
        "job": job,
        "_events": recorder,
        "_add": MagicMock(),
        "_list": MagicMock(return_value=[job]),
    }
    fields.update(overrides)
    return JobContext(**fields)


class TestJobContext:
    def test_correlation(self, recorder):
        ctx = make_context(recorder)
        assert ctx.correlation == {"job_id": "7", "attempt": 2, "name": "echo", "data": {"x": 1}}

    def test_log_methods_forward_with_correlation(self, recorder):
        ctx = make_context(recorder)
        ctx.info("hello", {"a": 1})
        ctx.warn("careful")
        ctx.error("oops", "details")

        assert recorder.events == [
            ("info", "hello", {**ctx.correlation, "message_data": {"a": 1}}),
            ("warn", "careful", {**ctx.correlation, "message_data": None}),
            ("error", "oops", {**ctx.correlation, "message_data": "details"}),
        ]

    def test_add_and_list_are_bound(self, recorder):
        add = MagicMock()
        ctx = make_context(recorder, _add=add)
        ctx.add("other", {"y": 2})
        add.assert_called_once_with("other", {"y": 2})
        assert [job.id for job in ctx.list()] == ["7"]

    def test_repr_hides_collaborators(self, recorder):
        assert "_events" not in repr(make_context(recorder))
