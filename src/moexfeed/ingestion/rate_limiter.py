"""Token bucket rate limiter for ISS requests.

ISS asks clients to stay around one request per second. The limiter holds
at most ``burst`` tokens and refills at ``rate`` tokens per second;
``acquire()`` waits until a token is available.

The wait is a plain ``asyncio.sleep``, so cancelling the waiting task
aborts it immediately without consuming a token.

Usage:
    limiter = RateLimiter(rate=1.0)

    await limiter.acquire()
    response = await client.get(url)
"""

import asyncio
import time
from typing import Awaitable, Callable

from moexfeed.common.config import config
from moexfeed.common.logging import get_logger
from moexfeed.common.metrics import create_component_metrics

logger = get_logger(__name__, component="rate_limiter")
metrics = create_component_metrics("rate_limiter", environment=config.environment)


class RateLimiter:
    """Cancellable token bucket.

    Not safe to share between independent pollers; each collector owns one.
    """

    def __init__(
        self,
        rate: float = 1.0,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            rate: Tokens added per second (1.0 = one request per second)
            burst: Bucket capacity
            clock: Monotonic clock, injectable for tests
            sleep: Async sleep, injectable for tests
        """
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")

        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated_at = clock()

    @property
    def interval(self) -> float:
        """Seconds between permits once the burst is spent."""
        return 1.0 / self.rate

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated_at = now

    def try_acquire(self) -> bool:
        """Take a token if one is available right now."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False

    async def acquire(self) -> float:
        """Wait for a token.

        Returns:
            Seconds spent waiting

        Raises:
            asyncio.CancelledError: If the task is cancelled while waiting
        """
        waited = 0.0
        while not self.try_acquire():
            delay = (1.0 - self._tokens) / self.rate
            logger.debug("Waiting for rate limiter permit", delay_seconds=round(delay, 3))
            await self._sleep(delay)
            waited += delay

        metrics.histogram("rate_limiter_wait_seconds", waited)
        return waited
