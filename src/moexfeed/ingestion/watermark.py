"""Durable storage for the collection watermark.

The watermark is the trade number of the last trade the collector has
published and checkpointed. It is a single opaque string; an empty string
means no trade has been seen yet.

Design:
- ``load()`` never fails startup: a missing or unreadable file is treated
  as the empty watermark
- ``save()`` raises CheckpointError so the caller knows the checkpoint did
  not happen
- Writes go to a temporary file that is renamed over the target, so a
  crash mid-write leaves the previous watermark intact
"""

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Protocol

from moexfeed.common.logging import get_logger
from moexfeed.ingestion.exceptions import CheckpointError
from moexfeed.ingestion.models import is_numeric_trade_id

logger = get_logger(__name__, component="watermark")


class WatermarkStore(Protocol):
    """Mechanical read/write of the watermark."""

    def load(self) -> str: ...

    def save(self, watermark: str) -> None: ...


class FileWatermarkStore:
    """Watermark kept as the sole content of a text file.

    Example:
        >>> store = FileWatermarkStore("/var/lib/moexfeed/last_trade_id")
        >>> store.load()
        ''
        >>> store.save("9876543210")
        >>> store.load()
        '9876543210'
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> str:
        """Read the watermark, returning '' if it cannot be read."""
        try:
            watermark = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            logger.info("No saved watermark, starting from scratch", path=str(self.path))
            return ""
        except (OSError, UnicodeDecodeError) as err:
            logger.warning(
                "Failed to read watermark, starting from scratch",
                path=str(self.path),
                error=str(err),
            )
            return ""

        if watermark and not is_numeric_trade_id(watermark):
            logger.warning(
                "Watermark is not a numeric trade number; numeric trades will sort below it",
                path=str(self.path),
                watermark=watermark,
            )

        logger.info("Watermark loaded", path=str(self.path), watermark=watermark)
        return watermark

    def save(self, watermark: str) -> None:
        """Atomically replace the stored watermark.

        Raises:
            CheckpointError: If the file cannot be written
        """
        with logger.timer("save_watermark", path=str(self.path), watermark=watermark):
            self._write(watermark)

    def _write(self, watermark: str) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(watermark)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as err:
            raise CheckpointError(
                f"failed to save watermark {watermark!r} to {self.path}: {err}"
            ) from err
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
