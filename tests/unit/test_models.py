"""Unit tests for the Trade record and trade number ordering."""

import json
from datetime import datetime

import pytest

from moexfeed.ingestion.models import (
    ZERO_TIMESTAMP,
    canonical_trade_id,
    is_newer,
    trade_id_key,
)
from tests.fixtures.iss import make_trade


class TestTradeIdOrdering:
    """Trade numbers compare numerically when numeric, as text otherwise."""

    def test_numeric_ids_compare_as_integers(self):
        """'1000' sorts after '999' even though it is smaller as text."""
        assert trade_id_key("1000") > trade_id_key("999")

    def test_leading_zeros_are_ignored(self):
        assert trade_id_key("000101") == trade_id_key("101")
        assert canonical_trade_id(" 000101 ") == "101"

    def test_non_numeric_ids_sort_after_numeric(self):
        assert trade_id_key("A1") > trade_id_key("99999999999")
        assert trade_id_key("A2") > trade_id_key("A1")

    def test_canonical_keeps_opaque_tokens(self):
        assert canonical_trade_id("T-0001") == "T-0001"

    @pytest.mark.parametrize(
        "trade_id,watermark,expected",
        [
            ("101", "100", True),
            ("100", "100", False),
            ("99", "100", False),
            ("0100", "100", False),
            ("1", "", True),
        ],
    )
    def test_is_newer(self, trade_id, watermark, expected):
        assert is_newer(trade_id, watermark) is expected


class TestTrade:
    """Wire format of a published trade."""

    def test_to_message_fields(self):
        trade = make_trade("12345", secid="GAZP", price=160.25, quantity=7, value=1121.75)

        assert trade.to_message() == {
            "tradeno": 12345,
            "tradetime": "2024-01-15T10:00:01",
            "boardid": "TQBR",
            "secid": "GAZP",
            "price": 160.25,
            "quantity": 7,
            "value": 1121.75,
        }

    def test_non_numeric_tradeno_stays_a_string(self):
        assert make_trade("T-42").to_message()["tradeno"] == "T-42"

    def test_to_json_is_utf8_json(self):
        trade = make_trade("1", board_id="ТQBR")

        decoded = json.loads(trade.to_json().decode("utf-8"))

        assert decoded["boardid"] == "ТQBR"
        assert decoded["tradeno"] == 1

    def test_zero_timestamp_serializes(self):
        trade = make_trade("1", timestamp=ZERO_TIMESTAMP)

        assert trade.to_message()["tradetime"] == "0001-01-01T00:00:00"

    def test_trade_is_immutable(self):
        trade = make_trade("1")

        with pytest.raises(AttributeError):
            trade.price = 1.0  # type: ignore[misc]

    def test_sort_key_matches_trade_id_key(self):
        assert make_trade("0042").sort_key == trade_id_key("42")
        assert make_trade("1", timestamp=datetime(2024, 1, 1)).sort_key < make_trade("2").sort_key
