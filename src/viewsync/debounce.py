"""Keyed trailing-edge debouncing on the running asyncio loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """Coalesces bursts of calls per key into one trailing execution.

    Scheduling again for a key cancels that key's pending timer, so only the
    last call in a burst runs. Callbacks may be plain functions or return an
    awaitable, which is run as a task. Failures are logged, never raised.
    """

    def __init__(self, delay_ms: int, name: str = "debounce") -> None:
        self.delay_ms = delay_ms
        self._name = name
        self._handles: dict[Hashable, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Future] = set()

    def schedule(self, key: Hashable, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback(*args)``; requires a running event loop."""
        loop = asyncio.get_running_loop()
        self.cancel(key)
        self._handles[key] = loop.call_later(
            self.delay_ms / 1000, self._fire, key, callback, args
        )

    def is_pending(self, key: Hashable) -> bool:
        return key in self._handles

    def cancel(self, key: Hashable) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    async def drain(self) -> None:
        """Wait for callbacks that already fired and are still running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, key: Hashable, callback: Callable[..., Any], args: tuple) -> None:
        self._handles.pop(key, None)
        try:
            result = callback(*args)
        except Exception:
            logger.exception("%s callback for %r failed", self._name, key)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s task failed", self._name, exc_info=exc)
