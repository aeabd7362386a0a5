"""Bounded concurrency for capture jobs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable

from beacongate.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConcurrencyLimiter:
    """Semaphore with a running count, usable as an async context manager."""

    max_concurrent: int
    _semaphore: asyncio.Semaphore = field(init=False)
    _running: int = field(default=0)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self._running += 1

    def release(self) -> None:
        self._running -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def running(self) -> int:
        return self._running

    @property
    def available(self) -> int:
        return self.max_concurrent - self._running


class TaskPool:
    """Track fire-and-forget tasks that each hold one limiter slot.

    The caller acquires the slot before reading work off the queue, so the pool never pulls
    more jobs than it can run.
    """

    def __init__(self, max_concurrent: int) -> None:
        self.limiter = ConcurrencyLimiter(max_concurrent)
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        """Run ``coro`` in a task that releases one already-acquired slot when done."""

        async def _wrapped() -> Any:
            try:
                return await coro
            finally:
                self.limiter.release()

        task = asyncio.create_task(_wrapped())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_all(self) -> None:
        """Wait for all tasks to complete."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @property
    def active_count(self) -> int:
        return len([t for t in self._tasks if not t.done()])
