"""
Async rate limiter with bounded concurrency and request pacing.
"""

import asyncio


class RateLimiter:
    """
    Rate limiter for catalog requests that combines:
    - **Concurrency limiting** via a semaphore
    - **Request pacing** to a maximum rate (requests/second)

    Use as ``async with limiter:`` around each remote call. A rate of 0
    disables pacing and only bounds concurrency.
    """

    def __init__(self, max_concurrent: int = 4, rate_per_second: float = 5):
        self.max_concurrent = max(1, int(max_concurrent))
        self.rate = float(rate_per_second) if rate_per_second else 0.0
        self._semaphore = None
        self._lock = None
        self._next_allowed: float = 0.0

    def _primitives(self):
        # Created on first use so the limiter can be built outside a running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._lock = asyncio.Lock()
        return self._semaphore, self._lock

    async def acquire(self):
        """
        Acquire a concurrency slot and wait until the next paced request slot.
        """
        semaphore, lock = self._primitives()
        await semaphore.acquire()

        if self.rate <= 0:
            return

        interval = 1.0 / self.rate
        loop = asyncio.get_running_loop()

        try:
            async with lock:
                now = loop.time()
                wait_for = max(0.0, self._next_allowed - now)
                self._next_allowed = max(now, self._next_allowed) + interval

            if wait_for > 0:
                await asyncio.sleep(wait_for)
        except BaseException:
            semaphore.release()
            raise

    def release(self):
        """Release a previously acquired concurrency slot."""
        semaphore, _ = self._primitives()
        semaphore.release()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.release()
        return False
