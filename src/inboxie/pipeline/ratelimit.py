from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Async token bucket.

    Tokens refill continuously at `rate` per second up to `capacity`;
    acquire() waits until a token is available. rate=None disables limiting.
    """

    def __init__(
        self,
        rate: Optional[float],
        capacity: Optional[float] = None,
        *,
        name: str = "bucket",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate is not None and rate <= 0:
            raise ValueError("rate must be positive or None")
        self.rate = rate
        self.capacity = capacity if capacity is not None else max(1.0, rate or 1.0)
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * (self.rate or 0.0))
        self._updated = now

    async def acquire(self, tokens: float = 1.0) -> None:
        if self.rate is None:
            return
        # Waiters queue on the lock, so grants are FIFO.
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return
                wait = (tokens - self._tokens) / self.rate
                logger.debug("[ratelimit] bucket=%s waiting=%.3fs", self.name, wait)
                await self._sleep(wait)
