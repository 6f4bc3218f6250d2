"""Tests for background task utilities."""

from __future__ import annotations

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars
from structlog.testing import capture_logs

from chapter_bot.background import run_async


def test_run_async_propagates_structlog_context():
    """Trace IDs bound in the webhook request should be visible to event handling."""

    clear_contextvars()
    bind_contextvars(trace_id="trace-123", tenant_id="T1")
    captured: dict[str, str] = {}

    future = run_async(lambda: captured.update(get_contextvars()))
    future.result(timeout=1)

    assert captured.get("trace_id") == "trace-123"
    assert captured.get("tenant_id") == "T1"

    clear_contextvars()


def test_run_async_accepts_explicit_trace_id():
    clear_contextvars()
    captured: dict[str, str] = {}

    future = run_async(lambda: captured.update(get_contextvars()), trace_id="trace-456")
    future.result(timeout=1)

    assert captured.get("trace_id") == "trace-456"

    clear_contextvars()


def test_run_async_forwards_arguments_and_result():
    future = run_async(lambda tenant_id, *, count: f"{tenant_id}:{count}", "T1", count=2)

    assert future.result(timeout=1) == "T1:2"


def test_run_async_preserves_trace_id_in_background_logs():
    clear_contextvars()

    with capture_logs(processors=[structlog.contextvars.merge_contextvars]) as logs:
        future = run_async(lambda: structlog.get_logger().info("leave_notice_sent"), trace_id="trace-789")
        future.result(timeout=1)

    assert logs, "expected leave_notice_sent log to be captured"
    event = logs[0]
    assert event.get("event") == "leave_notice_sent"
    assert event.get("trace_id") == "trace-789"

    clear_contextvars()


def test_failing_task_is_logged_and_reraised():
    def dispatch_batch():
        raise RuntimeError("dispatch exploded")

    with capture_logs() as logs:
        future = run_async(dispatch_batch, trace_id="trace-err")
        error = future.exception(timeout=1)

    assert isinstance(error, RuntimeError)
    failures = [entry for entry in logs if entry["event"] == "background_task_failed"]
    assert failures[0]["task"] == "dispatch_batch"
