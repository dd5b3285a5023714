"""
Detached side effects (view counters, watch history, cascade cleanup).

Callers never await these tasks; failures are logged and dropped. A strong
reference is kept until each task finishes so the event loop cannot collect it.
"""
import asyncio
from typing import Callable, Set

from core.config import logger

_PENDING: Set["asyncio.Task"] = set()


def _on_done(label: str, task: "asyncio.Task") -> None:
    _PENDING.discard(task)
    if task.cancelled():
        logger.warning(f"[background] {label} cancelled")
        return
    ex = task.exception()
    if ex is not None:
        logger.error(f"[background] {label} failed: {ex}")


def track(label: str, task: "asyncio.Task") -> "asyncio.Task":
    """Adopt a task nobody will await; its outcome is logged and drain() waits for it."""
    _PENDING.add(task)
    task.add_done_callback(lambda t: _on_done(label, t))
    return task


def fire_and_forget(label: str, fn: Callable, *args) -> "asyncio.Task":
    """Run a blocking function on a worker thread without holding up the caller."""
    return track(label, asyncio.create_task(asyncio.to_thread(fn, *args)))


async def drain() -> None:
    """Wait for every outstanding side effect (shutdown hook and tests)."""
    while _PENDING:
        await asyncio.gather(*list(_PENDING), return_exceptions=True)
