"""Collection cycle: ISS → Kafka with a durable watermark.

One cycle:

    Idle → Fetching → Publishing → Checkpointing → Idle

1. Fetch trades newer than the watermark (rate limited, decoded, oldest
   first). A fetch error ends the cycle; the next tick retries.
2. Nothing new: the cycle ends, watermark unchanged.
3. Publish each trade in trade number order, waiting for each broker
   acknowledgement before sending the next.
4. The first publish error ends the cycle with the watermark unchanged.
   The next cycle fetches from the old watermark again and re-sends part
   of the batch: consumers see duplicates, never gaps.
5. Every trade acknowledged: advance the watermark and persist it. A
   persist failure is logged but the cycle still succeeds, since the
   trades are on the broker; a restart before the next successful
   checkpoint re-sends this batch.

The collector owns the in-memory watermark. It is read from the store once,
at construction, and only ever moves forward.

Usage:
    collector = Collector(
        fetcher=IssClient(),
        publisher=KafkaTradePublisher(),
        store=FileWatermarkStore(config.collector.state_file_path),
    )
    await collector.run()   # until the task is cancelled
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from moexfeed.common.config import config
from moexfeed.common.logging import (
    clear_correlation_id,
    get_logger,
    new_correlation_id,
    set_correlation_id,
)
from moexfeed.common.metrics import create_component_metrics
from moexfeed.ingestion.exceptions import (
    CheckpointError,
    CollectorError,
    FetchError,
    PublishError,
)
from moexfeed.ingestion.models import DecodedBatch
from moexfeed.ingestion.publisher import TradePublisher
from moexfeed.ingestion.scheduler import Ticker
from moexfeed.ingestion.watermark import WatermarkStore

logger = get_logger(__name__, component="collector")
metrics = create_component_metrics("collector", environment=config.environment)


class TradeFetcher(Protocol):
    async def fetch_trades(self, engine: str, market: str, since_watermark: str) -> DecodedBatch: ...


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PUBLISHING = "publishing"
    CHECKPOINTING = "checkpointing"


class CycleStatus(str, Enum):
    PUBLISHED = "published"
    EMPTY = "empty"


@dataclass
class CycleResult:
    """Outcome of a cycle that did not fail."""

    status: CycleStatus
    published: int
    watermark_before: str
    watermark_after: str
    checkpointed: bool
    duration_seconds: float


@dataclass
class CollectorStats:
    """Counters since the collector was created."""

    start_time: float = field(default_factory=time.time)
    cycles: int = 0
    empty_cycles: int = 0
    failed_cycles: int = 0
    trades_published: int = 0
    checkpoint_failures: int = 0

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.start_time

    def as_dict(self) -> dict[str, float]:
        return {
            "cycles": self.cycles,
            "empty_cycles": self.empty_cycles,
            "failed_cycles": self.failed_cycles,
            "trades_published": self.trades_published,
            "checkpoint_failures": self.checkpoint_failures,
            "uptime_seconds": round(self.uptime_seconds, 1),
        }


class Collector:
    """Drives collection cycles for one engine/market."""

    def __init__(
        self,
        fetcher: TradeFetcher,
        publisher: TradePublisher,
        store: WatermarkStore,
        engine: str | None = None,
        market: str | None = None,
        poll_interval: float | None = None,
        ticker: Optional[Ticker] = None,
    ):
        self.fetcher = fetcher
        self.publisher = publisher
        self.store = store
        self.engine = engine or config.iss.engine
        self.market = market or config.iss.market
        self.poll_interval = poll_interval or config.collector.poll_interval
        self.ticker = ticker or Ticker(self.poll_interval)

        self.stats = CollectorStats()
        self._state = CycleState.IDLE
        self._watermark = store.load()

        logger.info(
            "Collector initialized",
            engine=self.engine,
            market=self.market,
            poll_interval=self.poll_interval,
            watermark=self._watermark,
        )

    @property
    def watermark(self) -> str:
        """Trade number of the last checkpointed trade ('' if none)."""
        return self._watermark

    @property
    def state(self) -> CycleState:
        return self._state

    def get_stats(self) -> dict[str, float]:
        return self.stats.as_dict()

    async def run(self) -> None:
        """Run a cycle on every tick until the task is cancelled.

        Cycle errors are logged and never stop the loop.
        """
        logger.info("Collector started", poll_interval=self.poll_interval)

        try:
            async for _ in self.ticker:
                try:
                    await self.run_cycle()
                except CollectorError as err:
                    logger.error(
                        "Collection cycle failed",
                        error=str(err),
                        error_type=type(err).__name__,
                        watermark=self._watermark,
                    )
                except Exception as err:
                    logger.exception("Unexpected error in collection cycle", error=str(err))
        except asyncio.CancelledError:
            logger.info("Collector stopping", watermark=self._watermark, **self.get_stats())
            raise

    async def run_cycle(self) -> CycleResult:
        """Run one fetch → publish → checkpoint cycle.

        Raises:
            FetchError: If ISS could not be read; watermark unchanged
            PublishError: If a trade was not acknowledged; watermark unchanged
        """
        set_correlation_id(new_correlation_id())
        start_time = time.perf_counter()
        watermark_before = self._watermark
        self.stats.cycles += 1

        try:
            self._state = CycleState.FETCHING
            try:
                batch = await self.fetcher.fetch_trades(self.engine, self.market, watermark_before)
            except FetchError:
                self._record_failure("fetch_error", start_time)
                raise

            if not batch.trades:
                self.stats.empty_cycles += 1
                logger.info("No new trades", watermark=watermark_before)
                return self._finish(CycleStatus.EMPTY, 0, watermark_before, True, start_time)

            logger.info(
                "New trades fetched",
                count=len(batch.trades),
                first=batch.trades[0].trade_id,
                last=batch.trades[-1].trade_id,
            )

            self._state = CycleState.PUBLISHING
            published = 0
            for trade in batch.trades:
                try:
                    await asyncio.to_thread(self.publisher.publish, trade)
                except PublishError:
                    self.stats.trades_published += published
                    self._record_failure("publish_error", start_time)
                    logger.warning(
                        "Batch aborted, watermark kept for redelivery",
                        published=published,
                        remaining=len(batch.trades) - published,
                        watermark=watermark_before,
                    )
                    raise
                published += 1

            self.stats.trades_published += published
            self._watermark = batch.watermark

            self._state = CycleState.CHECKPOINTING
            checkpointed = await self._checkpoint()

            logger.info(
                "Trades published",
                count=published,
                watermark=self._watermark,
                checkpointed=checkpointed,
            )
            return self._finish(
                CycleStatus.PUBLISHED, published, watermark_before, checkpointed, start_time,
            )
        finally:
            self._state = CycleState.IDLE
            clear_correlation_id()

    async def _checkpoint(self) -> bool:
        try:
            await asyncio.to_thread(self.store.save, self._watermark)
        except CheckpointError as err:
            self.stats.checkpoint_failures += 1
            metrics.increment("checkpoint_errors_total")
            logger.critical(
                "Watermark not saved; a restart will re-publish this batch",
                watermark=self._watermark,
                error=str(err),
            )
            return False

        metrics.gauge("last_checkpoint_timestamp_seconds", time.time())
        return True

    def _record_failure(self, outcome: str, start_time: float) -> None:
        self.stats.failed_cycles += 1
        metrics.increment("cycles_total", labels={"outcome": outcome})
        metrics.histogram("cycle_duration_seconds", time.perf_counter() - start_time)

    def _finish(
        self,
        status: CycleStatus,
        published: int,
        watermark_before: str,
        checkpointed: bool,
        start_time: float,
    ) -> CycleResult:
        duration = time.perf_counter() - start_time
        outcome = "success" if status is CycleStatus.PUBLISHED else "empty"
        metrics.increment("cycles_total", labels={"outcome": outcome})
        metrics.histogram("cycle_duration_seconds", duration)
        return CycleResult(
            status=status,
            published=published,
            watermark_before=watermark_before,
            watermark_after=self._watermark,
            checkpointed=checkpointed,
            duration_seconds=duration,
        )
