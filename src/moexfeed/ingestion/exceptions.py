"""Exception hierarchy for the collection pipeline.

Every error a collection cycle can hit is a CollectorError. The subclass
tells the collector what to do with it:

- FetchError: abort the cycle, keep the watermark, retry on the next tick
- RowDecodeError: skip the row, keep going with the batch
- PublishError: abort the cycle mid-batch, keep the watermark
- CheckpointError: log it; the trades are already on the broker
"""


class CollectorError(Exception):
    """Base class for collection pipeline errors."""


class FetchError(CollectorError):
    """ISS request failed: transport error, bad status or unusable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(FetchError):
    """ISS answered 200 but the body is not a trades table."""


class MissingColumnError(MalformedResponseError):
    """A column needed to decode the response is absent."""

    def __init__(self, column: str):
        super().__init__(f"ISS response has no '{column}' column")
        self.column = column


class RowDecodeError(CollectorError):
    """A single row could not be turned into a Trade."""


class FieldTypeError(RowDecodeError):
    """A field is missing or holds a value of an unusable type."""

    def __init__(self, field: str, value: object = None, reason: str = "invalid type"):
        super().__init__(f"field {field}: {reason} ({value!r})")
        self.field = field
        self.value = value


class PublishError(CollectorError):
    """Kafka did not acknowledge a trade."""

    def __init__(self, message: str, trade_id: str | None = None):
        super().__init__(message)
        self.trade_id = trade_id


class CheckpointError(CollectorError):
    """The watermark could not be persisted."""
