"""
Concurrency slots shared by all translation tasks.
"""

import asyncio

from longdoc.config import MAX_CONCURRENT_REQUESTS


class SemaphoreSlots:
    """Default ``IConcurrencySlots`` backed by ``asyncio.Semaphore``."""

    def __init__(self, limit: int = MAX_CONCURRENT_REQUESTS):
        if limit < 1:
            raise ValueError(f"Concurrency limit must be at least 1, got {limit}")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0

    @property
    def in_use(self) -> int:
        """Slots currently held."""
        return self._in_use

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self._in_use += 1

    def release(self) -> None:
        self._in_use -= 1
        self._semaphore.release()
