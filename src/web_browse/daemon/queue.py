"""Single-consumer FIFO work queue.

Every browser operation the daemon performs goes through one
:class:`CommandQueue`.  Exactly one consumer task drains it, so at most one
job touches the shared browser session at a time and jobs complete in
submission order.  A failing job resolves its own future with the error;
the consumer moves on to the next one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Job = Callable[[], Awaitable[Any]]
AfterEach = Callable[[], Awaitable[None]]

_STOP = object()


class CommandQueue:
    """FIFO queue with a single consumer task.

    Args:
        after_each: Awaited after every job, success or failure.  Its own
            failures are logged and ignored.
    """

    def __init__(self, after_each: AfterEach | None = None) -> None:
        self._after_each = after_each
        self._queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None
        self._active = 0
        self._max_active = 0
        self._completed = 0

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    @property
    def max_concurrency(self) -> int:
        """Highest number of jobs ever observed running at once."""
        return self._max_active

    @property
    def completed(self) -> int:
        return self._completed

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def start(self) -> None:
        """Start the consumer task on the running loop.  No-op if already running."""
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(), name="web-browse-command-queue")

    async def submit(self, job: Callable[[], Awaitable[T]]) -> T:
        """Append *job* and wait for its result (or exception)."""
        if not self.running:
            self.start()
        if self._queue is None:
            raise RuntimeError("command queue is not started")
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((job, future))
        return await future

    async def stop(self) -> None:
        """Let queued jobs finish, then stop the consumer."""
        if not self.running:
            return
        if self._queue is None or self._consumer is None:
            raise RuntimeError("command queue is not started")
        await self._queue.put(_STOP)
        await self._consumer

    async def _consume(self) -> None:
        if self._queue is None:
            raise RuntimeError("command queue is not started")
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            job, future = item
            if future.cancelled():
                continue

            self._active += 1
            self._max_active = max(self._max_active, self._active)
            result: Any = None
            error: Exception | None = None
            try:
                result = await job()
            except Exception as exc:
                error = exc
            finally:
                self._active -= 1
                self._completed += 1

            # cleanup completes before the caller sees the result
            if self._after_each is not None:
                try:
                    await self._after_each()
                except Exception:
                    logger.debug("Post-job cleanup failed", exc_info=True)

            if future.cancelled():
                continue
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)
