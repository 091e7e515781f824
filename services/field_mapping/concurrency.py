"""
Bounded-concurrency task scheduler.

At most max_concurrency tasks run at once; further submissions wait in FIFO
order. A finishing task hands its slot directly to the oldest waiter, so a
newly submitted task can never overtake one that is already queued.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque


class ConcurrencyController:
    def __init__(self, max_concurrency: int):
        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency < 1:
            raise ValueError(f"max_concurrency must be a positive integer, got {max_concurrency!r}")
        self.max_concurrency = max_concurrency
        self._running = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def running(self) -> int:
        return self._running

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def execute(self, task: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run task once a slot is free and return its result.

        Exceptions raised by the task propagate to this caller only; the slot
        is released either way and the next queued task is admitted.
        """
        await self._acquire()
        try:
            return await task()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._running < self.max_concurrency and not self._waiters:
            self._running += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Transfer the slot; _running stays the same
                waiter.set_result(None)
                return
        self._running -= 1
