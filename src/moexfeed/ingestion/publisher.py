"""Kafka publisher for decoded trades.

Publishes one trade at a time and blocks until the broker acknowledges it.
The collector relies on this: the watermark only moves after every trade in
the batch has a delivery report, so a fire-and-forget send would break the
at-least-once guarantee.

Message layout:
- key: SECID, so all trades of one security land on one partition in order
- value: UTF-8 JSON with tradeno, tradetime, boardid, secid, price,
  quantity, value

Usage:
    from moexfeed.ingestion.publisher import KafkaTradePublisher

    publisher = KafkaTradePublisher()
    report = publisher.publish(trade)
    print(report.partition, report.offset)
    publisher.close()
"""

import time
from dataclasses import dataclass
from typing import Any, NoReturn, Protocol

from confluent_kafka import KafkaException, Producer

from moexfeed.common.config import config
from moexfeed.common.logging import get_logger
from moexfeed.common.metrics import create_component_metrics
from moexfeed.ingestion.exceptions import PublishError
from moexfeed.ingestion.models import Trade

logger = get_logger(__name__, component="publisher")
metrics = create_component_metrics("publisher", environment=config.environment)


@dataclass(frozen=True)
class DeliveryReport:
    """Broker acknowledgement for one message."""

    topic: str
    partition: int
    offset: int


class TradePublisher(Protocol):
    """Synchronous single-trade publisher."""

    def publish(self, trade: Trade) -> DeliveryReport: ...

    def close(self) -> None: ...


class KafkaTradePublisher:
    """confluent-kafka producer wrapped as a synchronous publisher.

    Producer configuration:
    - enable.idempotence=True: broker-side retries do not duplicate
    - acks=all: acknowledged only once all in-sync replicas have the message
    - linger.ms=0: one message per request, nothing to batch
    """

    def __init__(
        self,
        bootstrap_servers: str | None = None,
        topic: str | None = None,
        delivery_timeout: float | None = None,
        producer: Any = None,
    ):
        """
        Args:
            bootstrap_servers: Kafka bootstrap servers (default: from config)
            topic: Destination topic (default: from config)
            delivery_timeout: Seconds to wait for an acknowledgement (default: from config)
            producer: Pre-built producer exposing produce/poll/flush (tests)

        Raises:
            KafkaException: If the producer cannot be created
        """
        self.bootstrap_servers = bootstrap_servers or config.kafka.bootstrap_servers
        self.topic = topic or config.kafka.topic
        self.delivery_timeout = delivery_timeout or config.kafka.delivery_timeout

        self._total_published = 0
        self._total_errors = 0

        self.producer = producer if producer is not None else self._init_producer()

        logger.info(
            "Kafka publisher initialized",
            bootstrap_servers=self.bootstrap_servers,
            topic=self.topic,
            delivery_timeout=self.delivery_timeout,
        )

    def _producer_config(self) -> dict[str, Any]:
        producer_config: dict[str, Any] = {
            "bootstrap.servers": self.bootstrap_servers,
            "enable.idempotence": True,
            "acks": "all",
            "linger.ms": 0,
            "delivery.timeout.ms": int(self.delivery_timeout * 1000),
            "client.id": "moexfeed",
        }

        kafka = config.kafka
        if kafka.security_protocol:
            producer_config["security.protocol"] = kafka.security_protocol
        if kafka.sasl_mechanism:
            producer_config["sasl.mechanism"] = kafka.sasl_mechanism
        if kafka.sasl_username:
            producer_config["sasl.username"] = kafka.sasl_username
        if kafka.sasl_password:
            producer_config["sasl.password"] = kafka.sasl_password

        return producer_config

    def _init_producer(self) -> Producer:
        producer_config = self._producer_config()
        try:
            producer = Producer(producer_config)
        except KafkaException as e:
            logger.error(
                "Failed to create Kafka producer",
                bootstrap_servers=self.bootstrap_servers,
                error=str(e),
            )
            raise

        logger.debug(
            "Kafka producer created",
            config={k: v for k, v in producer_config.items() if "password" not in k.lower()},
        )
        return producer

    def publish(self, trade: Trade) -> DeliveryReport:
        """Send one trade and wait for the broker acknowledgement.

        Raises:
            PublishError: If the message is rejected, fails delivery, or is
                not acknowledged within ``delivery_timeout``
        """
        labels = {"topic": self.topic}
        outcome: dict[str, Any] = {}

        def on_delivery(err, msg):
            outcome["error"] = err
            outcome["message"] = msg

        start_time = time.perf_counter()
        try:
            self.producer.produce(
                topic=self.topic,
                key=trade.security_id.encode("utf-8"),
                value=trade.to_json(),
                on_delivery=on_delivery,
            )
            self.producer.flush(self.delivery_timeout)
        except (BufferError, KafkaException) as err:
            self._fail(trade, type(err).__name__, str(err))

        if not outcome:
            self._fail(trade, "timeout", f"no acknowledgement within {self.delivery_timeout}s")

        if outcome["error"] is not None:
            self._fail(trade, "delivery", str(outcome["error"]))

        msg = outcome["message"]
        report = DeliveryReport(topic=msg.topic(), partition=msg.partition(), offset=msg.offset())

        self._total_published += 1
        metrics.increment("trades_published_total", labels=labels)
        metrics.histogram(
            "publish_duration_seconds", time.perf_counter() - start_time, labels=labels,
        )
        logger.debug(
            "Trade published",
            trade_id=trade.trade_id,
            secid=trade.security_id,
            partition=report.partition,
            offset=report.offset,
        )
        return report

    def _fail(self, trade: Trade, error_type: str, reason: str) -> NoReturn:
        self._total_errors += 1
        metrics.increment(
            "publish_errors_total", labels={"topic": self.topic, "error_type": error_type},
        )
        logger.error(
            "Trade not acknowledged",
            trade_id=trade.trade_id,
            secid=trade.security_id,
            error_type=error_type,
            error=reason,
        )
        raise PublishError(f"trade {trade.trade_id} not published: {reason}", trade_id=trade.trade_id)

    def close(self, timeout: float = 10.0) -> int:
        """Flush anything still queued.

        Returns:
            Number of messages still in queue after timeout
        """
        remaining = self.producer.flush(timeout)
        logger.info(
            "Kafka publisher closed",
            total_published=self._total_published,
            total_errors=self._total_errors,
            remaining_messages=remaining,
        )
        return remaining

    def get_stats(self) -> dict[str, int]:
        return {
            "published": self._total_published,
            "errors": self._total_errors,
        }
