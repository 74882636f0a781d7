"""moexfeed - MOEX ISS trade collector for Kafka."""

__version__ = "0.1.0"

# Expose submodules for easier imports and to support unittest.mock patching
from . import common
from . import ingestion

__all__ = ["common", "ingestion", "__version__"]
