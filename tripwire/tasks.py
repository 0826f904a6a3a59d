"""Helpers for fire-and-forget asyncio tasks."""

import asyncio
from typing import Coroutine, Optional, Set

import structlog

logger = structlog.get_logger("tripwire.bot")

# The event loop only holds weak references to tasks
_background_tasks: Set[asyncio.Task] = set()


def log_task_exception(task: asyncio.Task):
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(
            "background_task_failed",
            task=task.get_name(),
            error=str(exc),
            exc_type=type(exc).__name__,
        )


def spawn(coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
    """Schedule ``coro`` on the running loop with exception logging."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    task.add_done_callback(log_task_exception)
    return task
