"""Trade record and trade number ordering.

ISS trade numbers (TRADENO) arrive as JSON numbers on most boards and as
strings on some; they are carried as canonical text everywhere. Ordering
and equality go through ``trade_id_key`` only:

- all-digit identifiers compare as integers, so "0101" == "101" < "1000"
- any other token sorts after every numeric one, lexicographically

The same key drives watermark deduplication, publish order and the
choice of the next watermark.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

# Value used when TRADEDATE/TRADETIME are missing or unparseable
ZERO_TIMESTAMP = datetime.min


def is_numeric_trade_id(trade_id: str) -> bool:
    """True for trade numbers made only of ASCII digits, as ISS issues them."""
    return trade_id.isascii() and trade_id.isdigit()


def canonical_trade_id(raw: str) -> str:
    """Return the canonical text of a trade number.

    Strips surrounding whitespace and, for numeric identifiers, leading zeros.
    """
    token = raw.strip()
    if is_numeric_trade_id(token):
        return str(int(token))
    return token


def trade_id_key(trade_id: str) -> tuple[int, int, str]:
    """Sort key implementing the canonical identifier ordering."""
    token = canonical_trade_id(trade_id)
    if is_numeric_trade_id(token):
        return (0, int(token), "")
    return (1, 0, token)


def is_newer(trade_id: str, watermark: str) -> bool:
    """True when ``trade_id`` sorts strictly after ``watermark``.

    An empty watermark means nothing has been seen yet.
    """
    if not watermark:
        return True
    return trade_id_key(trade_id) > trade_id_key(watermark)


@dataclass(frozen=True)
class Trade:
    """One executed trade as reported by ISS."""

    trade_id: str
    timestamp: datetime
    board_id: str
    security_id: str
    price: float
    quantity: int
    value: float

    @property
    def sort_key(self) -> tuple[int, int, str]:
        return trade_id_key(self.trade_id)

    def to_message(self) -> dict[str, Any]:
        """Kafka message value, field names as ISS spells them (lowercased)."""
        tradeno: int | str = self.trade_id
        if self.trade_id.isascii() and self.trade_id.isdigit():
            tradeno = int(self.trade_id)

        return {
            "tradeno": tradeno,
            "tradetime": self.timestamp.isoformat(),
            "boardid": self.board_id,
            "secid": self.security_id,
            "price": self.price,
            "quantity": self.quantity,
            "value": self.value,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.to_message(), ensure_ascii=False).encode("utf-8")


@dataclass
class DecodedBatch:
    """Result of decoding one ISS response against a watermark.

    Attributes:
        trades: New trades, oldest first
        watermark: Candidate watermark (highest new trade number, or the
            input watermark when there is nothing new)
        rejected: Rows skipped because they failed to decode
        already_seen: Rows at or below the input watermark
    """

    trades: list[Trade]
    watermark: str
    rejected: int = 0
    already_seen: int = 0

    def __len__(self) -> int:
        return len(self.trades)
