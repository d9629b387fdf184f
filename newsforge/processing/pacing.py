"""
Request Pacing
==============

Shared outbound pacing for concurrent category workers:

- ``TokenBucketLimiter``: global request rate across every worker
- ``InFlightRegistry``: single-writer-per-URL claims so the store's
  duplicate-check-then-create sequence never races for the same source URL

Neither holds a lock while a network call is in progress.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Set, Optional


class TokenBucketLimiter:
    """Token bucket; ``acquire()`` waits until a request slot is available."""

    def __init__(self, rate: float, capacity: Optional[float] = None):
        """
        Args:
            rate: Tokens added per second
            capacity: Burst size (default: max(1, rate))
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = capacity if capacity is not None else max(1.0, rate)
        self._tokens = self.capacity
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()
        self.total_acquired = 0

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    async def acquire(self) -> float:
        """Take one token, sleeping outside the lock if the bucket is empty.

        Returns:
            Seconds waited
        """
        async with self._lock:
            self._refill()
            # Tokens may go negative: each waiter reserves its own future slot
            self._tokens -= 1
            wait = 0.0 if self._tokens >= 0 else -self._tokens / self.rate
            self.total_acquired += 1

        if wait > 0:
            await asyncio.sleep(wait)
        return wait


class InFlightRegistry:
    """Tracks source URLs currently being imported by any worker."""

    def __init__(self):
        self._claimed: Set[str] = set()

    def try_claim(self, key: str) -> bool:
        # No await between check and add, so this is atomic on the event loop
        if key in self._claimed:
            return False
        self._claimed.add(key)
        return True

    def release(self, key: str) -> None:
        self._claimed.discard(key)

    def is_claimed(self, key: str) -> bool:
        return key in self._claimed

    @asynccontextmanager
    async def claim(self, key: str):
        """Yield True if this caller owns ``key``; ownership ends on exit."""
        owned = self.try_claim(key)
        try:
            yield owned
        finally:
            if owned:
                self.release(key)

    def __len__(self) -> int:
        return len(self._claimed)
