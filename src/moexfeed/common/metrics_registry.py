"""
Prometheus metrics registry for moexfeed.

Pre-registers all metrics at module load time for better performance
and fail-fast behavior on duplicate metric names.

Metrics follow Prometheus naming conventions:
- snake_case names
- Base unit suffixes (_seconds, _total)
- Descriptive help text
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ==============================================================================
# Configuration
# ==============================================================================

# Standard labels applied to all metrics
STANDARD_LABELS = ["service", "environment", "component"]

# Labels identifying the polled feed
FEED_LABELS = STANDARD_LABELS + ["engine", "market"]

# ISS responds in tens to hundreds of milliseconds; the limiter waits up to 1s
REQUEST_BUCKETS = [
    0.010,  # 10ms
    0.050,  # 50ms
    0.100,  # 100ms
    0.250,  # 250ms
    0.500,  # 500ms
    1.000,  # 1s
    2.500,  # 2.5s
    5.000,  # 5s
    10.000,  # 10s (request timeout)
]

# Single acknowledged produce with acks=all
PUBLISH_BUCKETS = [
    0.001,  # 1ms
    0.005,  # 5ms
    0.010,  # 10ms
    0.025,  # 25ms
    0.050,  # 50ms
    0.100,  # 100ms
    0.250,  # 250ms
    0.500,  # 500ms
    1.000,  # 1s
    5.000,  # 5s
]

# ==============================================================================
# Service Information
# ==============================================================================

SERVICE_INFO = Info(
    "moexfeed",
    "moexfeed build information",
)

# ==============================================================================
# Collection Cycle
# ==============================================================================

CYCLES_TOTAL = Counter(
    "moexfeed_cycles_total",
    "Collection cycles by outcome (success, empty, fetch_error, publish_error)",
    STANDARD_LABELS + ["outcome"],
)

CYCLE_DURATION_SECONDS = Histogram(
    "moexfeed_cycle_duration_seconds",
    "Wall time of one collection cycle",
    STANDARD_LABELS,
    buckets=REQUEST_BUCKETS,
)

CHECKPOINT_ERRORS_TOTAL = Counter(
    "moexfeed_checkpoint_errors_total",
    "Watermark persist failures (trades already delivered)",
    STANDARD_LABELS,
)

LAST_CHECKPOINT_TIMESTAMP_SECONDS = Gauge(
    "moexfeed_last_checkpoint_timestamp_seconds",
    "Unix time of the last successfully persisted watermark",
    STANDARD_LABELS,
)

# ==============================================================================
# ISS Fetch
# ==============================================================================

TRADES_FETCHED_TOTAL = Counter(
    "moexfeed_trades_fetched_total",
    "New trades decoded from ISS responses",
    FEED_LABELS,
)

ROWS_REJECTED_TOTAL = Counter(
    "moexfeed_rows_rejected_total",
    "ISS rows not turned into trades (decode_error, already_seen)",
    FEED_LABELS + ["reason"],
)

FETCH_ERRORS_TOTAL = Counter(
    "moexfeed_fetch_errors_total",
    "Failed ISS fetches",
    FEED_LABELS + ["error_type"],
)

FETCH_DURATION_SECONDS = Histogram(
    "moexfeed_fetch_duration_seconds",
    "ISS request latency in seconds (excluding rate limiter wait)",
    FEED_LABELS,
    buckets=REQUEST_BUCKETS,
)

RATE_LIMITER_WAIT_SECONDS = Histogram(
    "moexfeed_rate_limiter_wait_seconds",
    "Time spent waiting for a rate limiter permit",
    STANDARD_LABELS,
    buckets=REQUEST_BUCKETS,
)

# ==============================================================================
# Kafka Publish
# ==============================================================================

TRADES_PUBLISHED_TOTAL = Counter(
    "moexfeed_trades_published_total",
    "Trades acknowledged by Kafka",
    STANDARD_LABELS + ["topic"],
)

PUBLISH_ERRORS_TOTAL = Counter(
    "moexfeed_publish_errors_total",
    "Trades Kafka failed to acknowledge",
    STANDARD_LABELS + ["topic", "error_type"],
)

PUBLISH_DURATION_SECONDS = Histogram(
    "moexfeed_publish_duration_seconds",
    "Produce-to-acknowledgement latency in seconds",
    STANDARD_LABELS + ["topic"],
    buckets=PUBLISH_BUCKETS,
)

# ==============================================================================
# Registry
# ==============================================================================

_METRIC_REGISTRY = {
    "cycles_total": CYCLES_TOTAL,
    "cycle_duration_seconds": CYCLE_DURATION_SECONDS,
    "checkpoint_errors_total": CHECKPOINT_ERRORS_TOTAL,
    "last_checkpoint_timestamp_seconds": LAST_CHECKPOINT_TIMESTAMP_SECONDS,
    "trades_fetched_total": TRADES_FETCHED_TOTAL,
    "rows_rejected_total": ROWS_REJECTED_TOTAL,
    "fetch_errors_total": FETCH_ERRORS_TOTAL,
    "fetch_duration_seconds": FETCH_DURATION_SECONDS,
    "rate_limiter_wait_seconds": RATE_LIMITER_WAIT_SECONDS,
    "trades_published_total": TRADES_PUBLISHED_TOTAL,
    "publish_errors_total": PUBLISH_ERRORS_TOTAL,
    "publish_duration_seconds": PUBLISH_DURATION_SECONDS,
}


def get_metric(metric_name: str) -> object:
    """
    Get a pre-registered metric by name.

    Args:
        metric_name: Metric name (without moexfeed_ prefix)

    Raises:
        KeyError: If metric name not found in registry
    """
    if metric_name not in _METRIC_REGISTRY:
        raise KeyError(
            f"Metric '{metric_name}' not found in registry. "
            f"Available metrics: {sorted(_METRIC_REGISTRY.keys())}"
        )
    return _METRIC_REGISTRY[metric_name]


def get_counter(metric_name: str) -> Counter:
    """Get a Counter metric."""
    return get_metric(metric_name)


def get_gauge(metric_name: str) -> Gauge:
    """Get a Gauge metric."""
    return get_metric(metric_name)


def get_histogram(metric_name: str) -> Histogram:
    """Get a Histogram metric."""
    return get_metric(metric_name)


def initialize_service_info(version: str, environment: str, engine: str, market: str) -> None:
    """Publish static build and deployment information."""
    SERVICE_INFO.info({
        "version": version,
        "environment": environment,
        "engine": engine,
        "market": market,
    })
