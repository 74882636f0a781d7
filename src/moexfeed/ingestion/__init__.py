"""moexfeed ingestion package.

Moves MOEX ISS trades to Kafka:
- IssClient: rate-limited ISS trades fetcher
- decode_trades: column-indexed decoding and watermark deduplication
- KafkaTradePublisher: synchronous, acknowledged single-trade publish
- FileWatermarkStore: durable last-trade cursor
- Collector: fetch → publish → checkpoint cycle on a fixed tick

Usage:
    from moexfeed.ingestion import (
        Collector, FileWatermarkStore, IssClient, KafkaTradePublisher,
    )

    async with IssClient() as client:
        collector = Collector(
            fetcher=client,
            publisher=KafkaTradePublisher(),
            store=FileWatermarkStore(".last_trade_id"),
        )
        result = await collector.run_cycle()
"""

from moexfeed.ingestion.collector import (
    Collector,
    CollectorStats,
    CycleResult,
    CycleState,
    CycleStatus,
)
from moexfeed.ingestion.decoder import decode_row, decode_trades
from moexfeed.ingestion.exceptions import (
    CheckpointError,
    CollectorError,
    FetchError,
    PublishError,
    RowDecodeError,
)
from moexfeed.ingestion.iss_client import IssClient
from moexfeed.ingestion.models import DecodedBatch, Trade
from moexfeed.ingestion.publisher import DeliveryReport, KafkaTradePublisher
from moexfeed.ingestion.rate_limiter import RateLimiter
from moexfeed.ingestion.scheduler import Ticker
from moexfeed.ingestion.watermark import FileWatermarkStore

__all__ = [
    "Collector",
    "CollectorStats",
    "CycleResult",
    "CycleState",
    "CycleStatus",
    "decode_row",
    "decode_trades",
    "CheckpointError",
    "CollectorError",
    "FetchError",
    "PublishError",
    "RowDecodeError",
    "IssClient",
    "DecodedBatch",
    "Trade",
    "DeliveryReport",
    "KafkaTradePublisher",
    "RateLimiter",
    "Ticker",
    "FileWatermarkStore",
]
