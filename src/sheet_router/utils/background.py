"""Bounded background queue for fire-and-forget learning writes."""

import asyncio
from typing import Awaitable, Callable, Optional

from .logging import get_logger

TaskFactory = Callable[[], Awaitable[None]]


class BackgroundTaskQueue:
    """Serial worker draining a bounded queue of coroutine factories.

    ``submit`` never blocks the caller: when the queue is full the task is
    dropped and logged. Task failures are logged and swallowed. ``drain``
    waits for everything queued so far; ``close`` drains and stops the worker.
    """

    def __init__(self, maxsize: int = 256, name: str = "learning"):
        self.maxsize = maxsize
        self.name = name
        self.logger = get_logger(f"background.{name}")
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    def _ensure_worker(self) -> None:
        loop = asyncio.get_running_loop()
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())

    def submit(self, factory: TaskFactory, label: str = "task") -> bool:
        """Queue a coroutine factory; returns False when it was dropped."""
        if self._closed:
            self.dropped += 1
            self.logger.warning(f"Queue closed, dropping {label}")
            return False

        try:
            self._ensure_worker()
        except RuntimeError as e:
            self.dropped += 1
            self.logger.warning(f"No running event loop, dropping {label}: {e}")
            return False
        try:
            self._queue.put_nowait((label, factory))
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning(f"Queue full ({self.maxsize}), dropping {label}")
            return False
        return True

    async def _run(self) -> None:
        while True:
            label, factory = await self._queue.get()
            try:
                await factory()
                self.completed += 1
            except Exception as e:
                self.failed += 1
                self.logger.warning(f"Background {label} failed: {e}")
            finally:
                self._queue.task_done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    async def drain(self) -> None:
        """Wait until every queued task has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Drain outstanding work and stop the worker."""
        self._closed = True
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
