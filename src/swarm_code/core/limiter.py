"""Bounded-parallelism admission gate for agent invocations."""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator


class ConcurrencyLimiter:
    """Counting gate with FIFO hand-off to waiters."""

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.active = 0
        self.peak = 0
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def acquire(self) -> None:
        if self.active < self.max_concurrent and not self._waiters:
            self._take()
            return

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # Slot was handed over just before cancellation; pass it on
                self.release()
            elif fut in self._waiters:
                self._waiters.remove(fut)
            raise

    def release(self) -> None:
        if self.active <= 0:
            raise RuntimeError("release() called more times than acquire()")
        self.active -= 1
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                # The slot passes straight to the next waiter
                self._take()
                fut.set_result(None)
                return

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def _take(self) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)
