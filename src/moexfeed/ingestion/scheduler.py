"""Fixed-interval tick stream for the collection loop.

Ticks fall on a fixed grid (start + n * interval). The consumer handles a
tick fully before asking for the next one, so ticks never overlap; grid
points that pass while the consumer is busy are skipped, not queued.

Cancelling the consuming task interrupts the sleep between ticks.
"""

import asyncio
import time
from typing import AsyncIterator, Awaitable, Callable

from moexfeed.common.logging import get_logger

logger = get_logger(__name__, component="scheduler")


class Ticker:
    """Async iterator yielding the tick number, starting at 1."""

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self.skipped = 0

    async def ticks(self) -> AsyncIterator[int]:
        tick = 0
        next_tick = self._clock() + self.interval

        while True:
            delay = next_tick - self._clock()
            if delay > 0:
                await self._sleep(delay)

            tick += 1
            yield tick

            next_tick += self.interval
            now = self._clock()
            if next_tick < now:
                missed = int((now - next_tick) // self.interval) + 1
                next_tick += missed * self.interval
                self.skipped += missed
                logger.debug("Cycle overran poll interval, ticks skipped", skipped=missed)

    def __aiter__(self) -> AsyncIterator[int]:
        return self.ticks()
