"""Unit tests for structured logging helpers."""

import pytest
from structlog.testing import capture_logs

from moexfeed.common.logging import (
    add_correlation_id,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    new_correlation_id,
    set_correlation_id,
)


class TestCorrelationId:
    def test_set_and_clear(self):
        set_correlation_id("abc123")
        assert get_correlation_id() == "abc123"

        clear_correlation_id()
        assert get_correlation_id() is None

    def test_new_ids_are_unique(self):
        assert new_correlation_id() != new_correlation_id()

    def test_processor_adds_id_when_set(self):
        set_correlation_id("cycle-1")
        try:
            event = add_correlation_id(None, "info", {"event": "x"})
        finally:
            clear_correlation_id()

        assert event["correlation_id"] == "cycle-1"
        assert "correlation_id" not in add_correlation_id(None, "info", {"event": "x"})


class TestFeedLogger:
    def test_component_and_bound_context(self):
        logger = get_logger("moexfeed.test", component="collector").bind(engine="stock")

        with capture_logs() as logs:
            logger.info("Trades published", count=3)

        assert logs[0]["event"] == "Trades published"
        assert logs[0]["component"] == "collector"
        assert logs[0]["engine"] == "stock"
        assert logs[0]["count"] == 3

    def test_timer_logs_failure_and_reraises(self):
        logger = get_logger("moexfeed.test")

        with capture_logs() as logs:
            with pytest.raises(ValueError):
                with logger.timer("save_watermark", watermark="1"):
                    raise ValueError("disk full")

        assert logs[0]["log_level"] == "error"
        assert logs[0]["operation"] == "save_watermark"
        assert logs[0]["error"] == "disk full"
