"""Bounded FIFO slot pool for outbound inference calls.

One pool is shared by every caller in a worker process so the cap holds no
matter which pipeline run issues the call. Callers beyond the cap wait in
arrival order and are handed a slot directly when one frees up.
"""

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque

from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ConcurrencyPool:
    """FIFO-fair limiter for simultaneous outbound calls."""

    def __init__(self, max_concurrent: int):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return len(self._waiters)

    def stats(self) -> dict:
        return {"active": self._active, "queued": len(self._waiters), "limit": self.max_concurrent}

    async def acquire(self) -> None:
        """Wait for a slot. Slots are granted strictly in arrival order."""
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            return

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)
        LOGGER.debug("Waiting for inference slot", extra=self.stats())

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was handed over just before cancellation; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        """Return a slot, handing it to the oldest live waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Ownership moves to the waiter; the active count is unchanged
                waiter.set_result(None)
                return
        if self._active <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._active -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()
