"""Utilities for running background tasks."""

from contextvars import copy_context
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import structlog
from structlog.contextvars import bind_contextvars, get_contextvars

logger = structlog.get_logger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="chapter-bot")


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Submit *func* to the shared thread pool and return a Future.

    The caller's structlog context (notably ``trace_id``) is copied into the
    worker so a webhook's request log and its event handling share one trace.
    Nobody waits on a webhook's Future, so a task that raises is logged here
    before the exception is stored on it.
    """

    context = copy_context()

    if trace_id is not None:
        existing_trace = context.run(lambda: get_contextvars().get("trace_id"))
        if existing_trace != trace_id:
            context.run(lambda: bind_contextvars(trace_id=trace_id))

    def logged() -> Any:
        try:
            return func(*args, **kwargs)
        except Exception:
            logger.exception("background_task_failed", task=getattr(func, "__name__", repr(func)))
            raise

    def runner() -> Any:
        return context.run(logged)

    return _executor.submit(runner)
