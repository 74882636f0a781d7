"""Unit tests for ISS trade table decoding.

Tests cover:
- Column index resolution and the mandatory TRADENO column
- Permissive field coercion (numbers as JSON numbers, strings, Decimals)
- Required vs best-effort fields
- Newest-first reversal, watermark deduplication and the next watermark
"""

from datetime import datetime
from decimal import Decimal

import pytest

from moexfeed.ingestion.decoder import (
    build_column_index,
    coerce_float,
    coerce_int,
    coerce_trade_id,
    combine_timestamp,
    decode_row,
    decode_trades,
)
from moexfeed.ingestion.exceptions import (
    FieldTypeError,
    MalformedResponseError,
    MissingColumnError,
    RowDecodeError,
)
from moexfeed.ingestion.models import ZERO_TIMESTAMP
from tests.fixtures.iss import ISS_COLUMNS, iss_payload, iss_row, ordered

INDEX = build_column_index(ISS_COLUMNS)


class TestColumnIndex:
    def test_positions_follow_column_order(self):
        index = build_column_index(["SECID", "TRADENO", "PRICE"])
        assert index == {"SECID": 0, "TRADENO": 1, "PRICE": 2}

    def test_missing_tradeno_fails(self):
        with pytest.raises(MissingColumnError) as exc_info:
            build_column_index(["SECID", "PRICE", "QUANTITY"])

        assert exc_info.value.column == "TRADENO"


class TestFieldCoercion:
    """Each coercion accepts natural, string and Decimal encodings."""

    @pytest.mark.parametrize("raw", [250.5, "250.5", Decimal("250.5"), " 250.5 "])
    def test_float_encodings(self, raw):
        row = iss_row(1, price=raw)
        assert coerce_float(row, INDEX, "PRICE") == 250.5

    @pytest.mark.parametrize("raw", [None, True, "abc", ["1"]])
    def test_float_rejects(self, raw):
        with pytest.raises(FieldTypeError):
            coerce_float(iss_row(1, price=raw), INDEX, "PRICE")

    @pytest.mark.parametrize("raw", [10, 10.0, "10", Decimal("10")])
    def test_int_encodings(self, raw):
        assert coerce_int(iss_row(1, quantity=raw), INDEX, "QUANTITY") == 10

    @pytest.mark.parametrize("raw", [10.5, "10.5", False, float("inf"), float("nan")])
    def test_int_rejects(self, raw):
        with pytest.raises(FieldTypeError):
            coerce_int(iss_row(1, quantity=raw), INDEX, "QUANTITY")

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (12345, "12345"),
            (12345.0, "12345"),
            (Decimal("12345"), "12345"),
            ("12345", "12345"),
            ("0012345", "12345"),
            ("T-1", "T-1"),
        ],
    )
    def test_trade_id_encodings(self, raw, expected):
        assert coerce_trade_id(iss_row(raw), INDEX) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", 1.5, True])
    def test_trade_id_rejects(self, raw):
        with pytest.raises(FieldTypeError):
            coerce_trade_id(iss_row(raw), INDEX)

    def test_short_row_is_missing_field(self):
        with pytest.raises(FieldTypeError):
            coerce_float([1, "2024-01-15"], INDEX, "PRICE")


class TestTimestamp:
    def test_date_and_time_combine(self):
        assert combine_timestamp(iss_row(1), INDEX) == datetime(2024, 1, 15, 10, 0, 1)

    def test_fractional_seconds(self):
        row = iss_row(1, tradetime="10:00:01.250000")
        assert combine_timestamp(row, INDEX) == datetime(2024, 1, 15, 10, 0, 1, 250000)

    @pytest.mark.parametrize(
        "tradedate,tradetime",
        [(None, "10:00:01"), ("2024-01-15", None), ("15.01.2024", "10:00:01"), ("", "")],
    )
    def test_bad_parts_give_zero_timestamp(self, tradedate, tradetime):
        row = iss_row(1, tradedate=tradedate, tradetime=tradetime)
        assert combine_timestamp(row, INDEX) == ZERO_TIMESTAMP


class TestDecodeRow:
    def test_full_row(self):
        trade = decode_row(iss_row("9001", secid="GAZP", price="160.1", quantity=3, value=480.3), INDEX)

        assert trade.trade_id == "9001"
        assert trade.security_id == "GAZP"
        assert trade.board_id == "TQBR"
        assert trade.price == 160.1
        assert trade.quantity == 3
        assert trade.value == 480.3
        assert trade.timestamp == datetime(2024, 1, 15, 10, 0, 1)

    @pytest.mark.parametrize("field", ["price", "quantity"])
    def test_required_field_fails_row(self, field):
        with pytest.raises(RowDecodeError):
            decode_row(iss_row(1, **{field: "n/a"}), INDEX)

    def test_best_effort_fields_degrade(self):
        row = iss_row(1, value="n/a", boardid=None, secid=42, tradetime=None)

        trade = decode_row(row, INDEX)

        assert trade.value == 0.0
        assert trade.board_id == ""
        assert trade.security_id == ""
        assert trade.timestamp == ZERO_TIMESTAMP

    def test_missing_best_effort_column(self):
        columns = ["TRADENO", "PRICE", "QUANTITY"]
        trade = decode_row([5, 1.5, 2], build_column_index(columns))

        assert trade.trade_id == "5"
        assert trade.value == 0.0
        assert trade.security_id == ""
        assert trade.timestamp == ZERO_TIMESTAMP

    def test_non_array_row(self):
        with pytest.raises(RowDecodeError):
            decode_row({"TRADENO": 1}, INDEX)


class TestDecodeTrades:
    """Whole-response decoding against a watermark."""

    def test_reverses_and_drops_watermark_row(self):
        """Watermark 100, rows 103..100 newest first → 101, 102, 103."""
        payload = iss_payload([iss_row(i) for i in (103, 102, 101, 100)])

        batch = decode_trades(payload, "100")

        assert [t.trade_id for t in batch.trades] == ["101", "102", "103"]
        assert batch.watermark == "103"
        assert batch.already_seen == 1

    def test_one_above_watermark_is_kept(self):
        batch = decode_trades(iss_payload([iss_row(101), iss_row(100)]), "100")
        assert [t.trade_id for t in batch.trades] == ["101"]

    def test_rows_below_watermark_are_dropped(self):
        batch = decode_trades(iss_payload([iss_row(i) for i in (101, 100, 99, 98)]), "100")

        assert [t.trade_id for t in batch.trades] == ["101"]
        assert batch.already_seen == 3

    def test_empty_watermark_keeps_everything(self):
        batch = decode_trades(iss_payload([iss_row(i) for i in (3, 2, 1)]), "")

        assert [t.trade_id for t in batch.trades] == ["1", "2", "3"]
        assert batch.watermark == "3"

    def test_out_of_order_rows_are_sorted(self):
        batch = decode_trades(iss_payload([iss_row(i) for i in (5, 9, 7, 1000, 6)]), "")

        ids = [t.trade_id for t in batch.trades]
        assert ordered(ids)
        assert batch.watermark == "1000"

    def test_no_new_trades_keeps_watermark(self):
        batch = decode_trades(iss_payload([iss_row(100)]), "100")

        assert batch.trades == []
        assert batch.watermark == "100"

    def test_empty_data(self):
        batch = decode_trades(iss_payload([]), "77")

        assert len(batch) == 0
        assert batch.watermark == "77"

    def test_bad_row_is_skipped_not_fatal(self):
        rows = [iss_row(3), iss_row(2, price="broken"), iss_row(1)]

        batch = decode_trades(iss_payload(rows), "")

        assert [t.trade_id for t in batch.trades] == ["1", "3"]
        assert batch.rejected == 1
        assert batch.watermark == "3"

    def test_malformed_value_keeps_row(self):
        batch = decode_trades(iss_payload([iss_row(1, value={"x": 1})]), "")

        assert len(batch.trades) == 1
        assert batch.trades[0].value == 0.0

    def test_missing_tradeno_column_fails_response(self):
        columns = [c for c in ISS_COLUMNS if c != "TRADENO"]
        payload = iss_payload([["2024-01-15", "10:00:01", "TQBR", "SBER", 1.0, 1, 1.0, "N"]], columns)

        with pytest.raises(MissingColumnError):
            decode_trades(payload, "")

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"securities": {}},
            {"trades": []},
            {"trades": {"columns": ["TRADENO"]}},
            {"trades": {"columns": "TRADENO", "data": []}},
        ],
    )
    def test_malformed_payload(self, payload):
        with pytest.raises(MalformedResponseError):
            decode_trades(payload, "")

    def test_leading_zero_watermark_matches(self):
        """A watermark saved with leading zeros still deduplicates."""
        batch = decode_trades(iss_payload([iss_row(101), iss_row(100)]), "000100")
        assert [t.trade_id for t in batch.trades] == ["101"]
