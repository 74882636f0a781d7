"""
Prometheus metrics instrumentation.

A small API over the pre-registered metrics in ``metrics_registry``.

Usage:
    from moexfeed.common.metrics import create_component_metrics

    metrics = create_component_metrics("publisher")

    metrics.increment("trades_published_total", labels={"topic": "iss_data"})

    with metrics.timer("publish_duration_seconds", labels={"topic": "iss_data"}):
        publish()
"""

import time
from contextlib import contextmanager
from typing import Dict, Generator, Optional

from prometheus_client import start_http_server

from moexfeed.common.metrics_registry import (
    get_counter,
    get_gauge,
    get_histogram,
    initialize_service_info,
)


class MetricsClient:
    """
    Lightweight wrapper around the Prometheus metrics registry.

    All metrics are pre-registered in metrics_registry.py; unknown names
    fail fast with KeyError.
    """

    def __init__(self, default_labels: Optional[Dict[str, str]] = None):
        """
        Args:
            default_labels: Labels applied to every metric written through
                this client (e.g., {"service": "moexfeed", "component": "iss"})
        """
        self.default_labels = default_labels or {}

    def _merge_labels(self, labels: Optional[Dict[str, str]]) -> Dict[str, str]:
        """Merge provided labels with default labels."""
        merged = self.default_labels.copy()
        if labels:
            merged.update(labels)
        return merged

    def increment(
        self,
        metric_name: str,
        value: int = 1,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Increment a counter metric."""
        counter = get_counter(metric_name)
        counter.labels(**self._merge_labels(labels)).inc(value)

    def gauge(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Set a gauge metric to a specific value."""
        gauge_metric = get_gauge(metric_name)
        gauge_metric.labels(**self._merge_labels(labels)).set(value)

    def histogram(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Record a histogram observation."""
        histogram_metric = get_histogram(metric_name)
        histogram_metric.labels(**self._merge_labels(labels)).observe(value)

    @contextmanager
    def timer(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None,
    ) -> Generator[None, None, None]:
        """
        Context manager for timing operations.

        The duration is recorded in the histogram whether or not the block
        raises.
        """
        start_time = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start_time
            self.histogram(metric_name, duration, labels)


def initialize_metrics(version: str, environment: str, engine: str, market: str) -> None:
    """
    Initialize service metrics with version info.

    Should be called once at application startup.
    """
    initialize_service_info(version, environment, engine, market)


def serve_metrics(port: int) -> None:
    """Expose /metrics on the given port from a background thread."""
    start_http_server(port)


def create_component_metrics(
    component: str,
    service: str = "moexfeed",
    environment: str = "local",
) -> MetricsClient:
    """
    Create a metrics client with default labels for a component.

    Example:
        metrics = create_component_metrics("collector", environment="production")
        metrics.increment("cycles_total", labels={"outcome": "success"})
        # moexfeed_cycles_total{service="moexfeed", environment="production",
        #                       component="collector", outcome="success"}
    """
    return MetricsClient(
        default_labels={
            "service": service,
            "environment": environment,
            "component": component,
        }
    )
