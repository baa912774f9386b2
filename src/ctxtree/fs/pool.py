"""Bounded pool of asyncio tasks with blocking admission and drain."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from ctxtree.runtime_logging import RuntimeLogger, get_runtime_logger


class BoundedTaskPool:
    """Run coroutines as tasks with at most ``limit`` of them in flight.

    ``submit`` returns once the task is scheduled, waiting first for a free
    slot when the pool is full. ``drain`` waits for everything in flight.
    Task failures are logged when reaped and never re-raised.
    """

    def __init__(self, limit: int, *, logger: RuntimeLogger | None = None) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.peak = 0
        self._active: set[asyncio.Task[Any]] = set()
        self._logger = logger or get_runtime_logger()

    @property
    def in_flight(self) -> int:
        return len(self._active)

    async def submit(self, coro: Coroutine[Any, Any, Any]) -> None:
        while len(self._active) >= self.limit:
            done, _ = await asyncio.wait(self._active, return_when=asyncio.FIRST_COMPLETED)
            self._reap(done)

        task = asyncio.create_task(coro)
        self._active.add(task)
        self.peak = max(self.peak, len(self._active))

    async def drain(self) -> None:
        while self._active:
            done, _ = await asyncio.wait(self._active)
            self._reap(done)

    def _reap(self, done: set[asyncio.Task[Any]]) -> None:
        for task in done:
            self._active.discard(task)
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                self._logger.error(
                    "pool.task.failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
