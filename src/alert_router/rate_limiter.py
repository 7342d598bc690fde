"""Token bucket for pacing calls against a rate-limited broker API"""

import asyncio
import time
from typing import Awaitable, Callable, Optional


class TokenBucket:
    """
    Async token bucket.

    Holds up to `burst` tokens, refilled continuously at `rate_per_second`.
    `acquire()` waits until a token is available and takes it.
    """

    def __init__(self, rate_per_second: float, burst: int = 1,
                 clock: Optional[Callable[[], float]] = None,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        if rate_per_second <= 0:
            raise ValueError(f"rate_per_second must be positive, got {rate_per_second}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")
        self.rate = rate_per_second
        self.capacity = float(burst)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(burst)
        self._updated_at = self._clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated_at = now

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def try_acquire(self) -> bool:
        """Take a token if one is available right now"""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self) -> float:
        """
        Wait for a token.

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            while not self.try_acquire():
                wait_for = (1.0 - self._tokens) / self.rate
                await self._sleep(wait_for)
                waited += wait_for
                # The full wait has elapsed, so float drift cannot leave us short of a token
                self._refill()
                self._tokens = max(self._tokens, 1.0)
        return waited
