"""Deferred work queue drained after the response is sent."""

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class DeferredTaskQueue:
    """FIFO queue of coroutine factories.

    The host calls ``drain()`` from its end-of-request hook.  Tasks run one
    after the other in submission order; a failing task is logged and the
    drain continues.  Tasks enqueued while draining run in the same drain.

    Example:
        queue = DeferredTaskQueue()
        queue.enqueue(lambda: run_search(job_id), name="search abc")
        await queue.drain()
    """

    def __init__(self) -> None:
        self._tasks: deque[tuple[str, TaskFactory]] = deque()

    def __len__(self) -> int:
        return len(self._tasks)

    def enqueue(self, factory: TaskFactory, name: str = "task") -> None:
        """Add a unit of work; it runs at the next ``drain()``."""
        self._tasks.append((name, factory))

    async def drain(self) -> int:
        """Run every queued task; return how many ran."""
        count = 0
        while self._tasks:
            name, factory = self._tasks.popleft()
            count += 1
            try:
                await factory()
            except Exception:
                logger.exception(f"Deferred task '{name}' failed")
        return count
