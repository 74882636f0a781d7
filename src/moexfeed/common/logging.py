"""
Structured logging with correlation IDs.

Logs are rendered for the console during development and as JSON in
production (one object per line, ready for Loki / ELK).

Usage:
    from moexfeed.common.logging import get_logger

    logger = get_logger(__name__, component="collector")

    logger.info("Trades published", count=42, watermark="9876543")

    # Every log line emitted inside a cycle carries its correlation id
    set_correlation_id(new_correlation_id())
    logger.info("Cycle started")
    clear_correlation_id()

    with logger.timer("fetch_trades", engine="stock"):
        fetch()
"""

import contextvars
import datetime
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


# ==============================================================================
# Context Management
# ==============================================================================


def new_correlation_id() -> str:
    """Return a short random id suitable for tagging one collection cycle."""
    return uuid.uuid4().hex[:12]


def set_correlation_id(correlation_id: str) -> None:
    """
    Set correlation ID for current context.

    The ID is added to every log message emitted from the current thread or
    asyncio task until cleared.
    """
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID from context."""
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    """Clear correlation ID from current context."""
    _correlation_id_var.set(None)


# ==============================================================================
# Structlog Processors
# ==============================================================================


def add_correlation_id(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add correlation_id from context to log events."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO 8601 UTC timestamp to log events."""
    event_dict["timestamp"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
    return event_dict


def add_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add log level to event dict.

    Converts method_name (info, warning, error) to uppercase level.
    """
    if method_name == "msg":
        level = event_dict.pop("level", "INFO")
    else:
        level = method_name.upper()

    event_dict["level"] = level
    return event_dict


# ==============================================================================
# Logger Configuration
# ==============================================================================


def configure_logging(
    json_output: bool = False,
    log_level: str = "INFO",
) -> None:
    """
    Configure structlog for the application.

    Should be called once at startup; the CLI calls it with values from
    ``config.observability``.

    Args:
        json_output: If True, output JSON logs. If False, use console-friendly format.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id,
        add_timestamp,
        add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# ==============================================================================
# Logger Factory
# ==============================================================================


class FeedLogger:
    """
    Thin wrapper over a structlog BoundLogger.

    Adds a component binding and a timing context manager on top of the
    usual level methods.
    """

    def __init__(self, logger: structlog.BoundLogger, component: Optional[str] = None):
        self._logger = logger
        self._component = component

        if component:
            self._logger = self._logger.bind(component=component)

    def bind(self, **kwargs: Any) -> "FeedLogger":
        """Return a new logger with additional context bound."""
        return FeedLogger(self._logger.bind(**kwargs), None)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._logger.critical(message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._logger.exception(message, **kwargs)

    @contextmanager
    def timer(self, operation: str, **context: Any):
        """
        Context manager for timing operations.

        Logs the duration at debug level on success and at error level
        (then re-raises) on failure.

        Example:
            with logger.timer("publish_batch", trades=10):
                publish()
        """
        start_time = time.perf_counter()
        try:
            yield
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.error(
                f"Operation failed: {operation}",
                operation=operation,
                duration_ms=round(duration_ms, 3),
                error=str(e),
                **context,
            )
            raise
        else:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.debug(
                f"Operation completed: {operation}",
                operation=operation,
                duration_ms=round(duration_ms, 3),
                **context,
            )


def get_logger(
    name: str,
    component: Optional[str] = None,
    **initial_context: Any,
) -> FeedLogger:
    """
    Get a structured logger for a module.

    Args:
        name: Module name (typically __name__)
        component: Component name (e.g., "iss", "publisher", "collector")
        **initial_context: Additional context to bind to logger

    Example:
        logger = get_logger(__name__, component="iss", engine="stock")
        logger.info("Requesting trades", market="shares")
    """
    base_logger = structlog.get_logger(name)

    if initial_context:
        base_logger = base_logger.bind(**initial_context)

    return FeedLogger(base_logger, component)


# Console output by default; the CLI reconfigures from settings.
configure_logging(json_output=False, log_level="INFO")
