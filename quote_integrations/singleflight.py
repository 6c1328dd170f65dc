"""Share one in-flight coroutine between concurrent callers of the same key."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Coalesce concurrent calls per key.

    The first caller for a key starts ``fn`` as a task; callers arriving while
    it runs await the same task. The key is released before the task
    completes, so a caller arriving afterwards starts a fresh call.
    """

    def __init__(self) -> None:
        self._calls: dict[str, asyncio.Task[T]] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        task = self._calls.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, fn))
            task.add_done_callback(_consume_exception)
            self._calls[key] = task
        else:
            logger.debug("Joining in-flight call for %s", key)
        # Shielded so one waiter's cancellation leaves the others running.
        return await asyncio.shield(task)

    async def _run(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        finally:
            # cancel_all may have let a newer flight take this key.
            if self._calls.get(key) is asyncio.current_task():
                del self._calls[key]

    def cancel_all(self) -> None:
        for task in list(self._calls.values()):
            task.cancel()
        self._calls.clear()


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Every waiter may have been cancelled; avoid "exception never retrieved".
    if not task.cancelled():
        task.exception()


__all__ = ["SingleFlight"]
