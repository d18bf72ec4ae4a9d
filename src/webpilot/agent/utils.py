"""
agent/utils.py — Background Task Helper

fire_and_forget() schedules a coroutine that nobody awaits (the browser
keep-alive prober) without letting asyncio garbage-collect it mid-flight or
lose its exception.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from webpilot.observability.logger import get_logger

log = get_logger(__name__)

# Strong references; removed in the done-callback
_BG_TASKS: set[asyncio.Task] = set()


def fire_and_forget(coro: Coroutine[Any, Any, Any], label: str = "bg_task") -> asyncio.Task:
    """
    Schedule `coro` as a background task and return it.

    The task is held in a module-level set until it finishes, and any
    unhandled exception is logged as "bg_task.failed" with `label`.
    """
    task = asyncio.create_task(coro, name=label)
    _BG_TASKS.add(task)

    def _on_done(t: asyncio.Task) -> None:
        _BG_TASKS.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            log.warning(
                "bg_task.failed",
                label=label,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    task.add_done_callback(_on_done)
    return task


def pending_background_tasks() -> int:
    return len(_BG_TASKS)
