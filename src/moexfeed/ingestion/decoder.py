"""Decoding of ISS column-oriented trade tables.

ISS returns tables as a column list plus positional rows:

    {"trades": {
        "columns": ["TRADENO", "TRADETIME", "BOARDID", "SECID", "PRICE", ...],
        "data": [[12345, "10:00:01", "TQBR", "SBER", 250.5, ...], ...]
    }}

Column positions are resolved once per response. Each field goes through
a permissive coercion that accepts the value in its natural JSON form, a
numeric string, or a Decimal (when the body is parsed with
``parse_float=Decimal``). Fields are either required (TRADENO, PRICE,
QUANTITY: a bad value drops the row) or best-effort (BOARDID, SECID,
VALUE, TRADEDATE+TRADETIME: a bad value becomes empty/zero).

Rows arrive newest first; ``decode_trades`` returns them oldest first.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence

from moexfeed.common.logging import get_logger
from moexfeed.ingestion.exceptions import (
    FieldTypeError,
    MalformedResponseError,
    MissingColumnError,
    RowDecodeError,
)
from moexfeed.ingestion.models import (
    ZERO_TIMESTAMP,
    DecodedBatch,
    Trade,
    canonical_trade_id,
    is_newer,
)

logger = get_logger(__name__, component="decoder")

TABLE = "trades"

COL_TRADENO = "TRADENO"
COL_TRADEDATE = "TRADEDATE"
COL_TRADETIME = "TRADETIME"
COL_BOARDID = "BOARDID"
COL_SECID = "SECID"
COL_PRICE = "PRICE"
COL_QUANTITY = "QUANTITY"
COL_VALUE = "VALUE"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


# ==============================================================================
# Field coercion
# ==============================================================================


def _field(row: Sequence[Any], index: Mapping[str, int], name: str) -> Any:
    position = index.get(name)
    if position is None or position >= len(row):
        raise FieldTypeError(name, reason="missing")
    return row[position]


def _integral(name: str, value: float | Decimal) -> int:
    try:
        integral = int(value)
    except (OverflowError, ValueError, InvalidOperation):
        raise FieldTypeError(name, value, reason="not finite") from None
    if value != integral:
        raise FieldTypeError(name, value, reason="not an integer")
    return integral


def coerce_str(row: Sequence[Any], index: Mapping[str, int], name: str) -> str:
    value = _field(row, index, name)
    if isinstance(value, str):
        return value
    raise FieldTypeError(name, value)


def coerce_float(row: Sequence[Any], index: Mapping[str, int], name: str) -> float:
    value = _field(row, index, name)
    # bool is an int subclass and never a price
    if isinstance(value, bool):
        raise FieldTypeError(name, value)
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise FieldTypeError(name, value, reason="not a number") from None
    raise FieldTypeError(name, value)


def coerce_int(row: Sequence[Any], index: Mapping[str, int], name: str) -> int:
    value = _field(row, index, name)
    if isinstance(value, bool):
        raise FieldTypeError(name, value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        # JSON numbers may come back as floats; 1000.0 is fine, 10.5 is not
        return _integral(name, value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise FieldTypeError(name, value, reason="not an integer") from None
    raise FieldTypeError(name, value)


def coerce_trade_id(row: Sequence[Any], index: Mapping[str, int], name: str = COL_TRADENO) -> str:
    """Return the canonical trade number of a row."""
    value = _field(row, index, name)
    if isinstance(value, bool):
        raise FieldTypeError(name, value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        return str(_integral(name, value))
    if isinstance(value, str):
        token = canonical_trade_id(value)
        if token:
            return token
        raise FieldTypeError(name, value, reason="empty")
    raise FieldTypeError(name, value)


def combine_timestamp(row: Sequence[Any], index: Mapping[str, int]) -> datetime:
    """TRADEDATE + TRADETIME, or ZERO_TIMESTAMP when they do not combine."""
    try:
        date_part = coerce_str(row, index, COL_TRADEDATE)
        time_part = coerce_str(row, index, COL_TRADETIME)
    except FieldTypeError:
        return ZERO_TIMESTAMP

    combined = f"{date_part} {time_part}"
    try:
        return datetime.strptime(combined, TIMESTAMP_FORMAT)
    except ValueError:
        pass
    # Some boards report fractional seconds
    try:
        return datetime.fromisoformat(combined)
    except ValueError:
        return ZERO_TIMESTAMP


def _best_effort(coerce, row, index, name, default):
    try:
        return coerce(row, index, name)
    except FieldTypeError:
        return default


# ==============================================================================
# Rows and responses
# ==============================================================================


def build_column_index(columns: Sequence[Any]) -> dict[str, int]:
    """Map column name to position.

    Raises:
        MissingColumnError: If TRADENO is absent
    """
    index = {str(name): position for position, name in enumerate(columns)}
    if COL_TRADENO not in index:
        raise MissingColumnError(COL_TRADENO)
    return index


def decode_row(row: Sequence[Any], index: Mapping[str, int]) -> Trade:
    """Decode one positional row.

    Raises:
        RowDecodeError: If a required field is missing or malformed
    """
    if not isinstance(row, (list, tuple)):
        raise RowDecodeError(f"row is not an array: {row!r}")

    return Trade(
        trade_id=coerce_trade_id(row, index),
        timestamp=combine_timestamp(row, index),
        board_id=_best_effort(coerce_str, row, index, COL_BOARDID, ""),
        security_id=_best_effort(coerce_str, row, index, COL_SECID, ""),
        price=coerce_float(row, index, COL_PRICE),
        quantity=coerce_int(row, index, COL_QUANTITY),
        value=_best_effort(coerce_float, row, index, COL_VALUE, 0.0),
    )


def extract_table(payload: Any, table: str = TABLE) -> tuple[list[Any], list[Any]]:
    """Return (columns, data) of an ISS table.

    Raises:
        MalformedResponseError: If the payload does not hold the table
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"expected a JSON object, got {type(payload).__name__}")

    block = payload.get(table)
    if not isinstance(block, dict):
        raise MalformedResponseError(f"response has no '{table}' table")

    columns = block.get("columns")
    data = block.get("data")
    if not isinstance(columns, list) or not isinstance(data, list):
        raise MalformedResponseError(f"'{table}' table lacks columns/data arrays")

    return columns, data


def decode_trades(payload: Any, watermark: str) -> DecodedBatch:
    """Decode a newest-first ISS trades response into new trades.

    Rows whose trade number is at or below ``watermark`` are dropped, rows
    that fail to decode are logged and skipped. The returned trades are in
    increasing trade number order.

    Raises:
        MalformedResponseError: If the body is not a trades table
        MissingColumnError: If TRADENO is absent (nothing can be ordered)
    """
    columns, data = extract_table(payload)
    if not data:
        return DecodedBatch(trades=[], watermark=watermark)

    index = build_column_index(columns)

    trades: list[Trade] = []
    rejected = 0
    already_seen = 0

    for row in reversed(data):
        try:
            trade = decode_row(row, index)
        except RowDecodeError as err:
            rejected += 1
            logger.warning("Skipping undecodable trade row", error=str(err), row=row)
            continue

        if not is_newer(trade.trade_id, watermark):
            already_seen += 1
            continue

        trades.append(trade)

    trades.sort(key=lambda t: t.sort_key)

    new_watermark = trades[-1].trade_id if trades else watermark

    return DecodedBatch(
        trades=trades,
        watermark=new_watermark,
        rejected=rejected,
        already_seen=already_seen,
    )
