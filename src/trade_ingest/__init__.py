"""Synthetic trade generation and batch ingestion into a time-series store."""

from trade_ingest.exceptions import (
    AlreadyRunningError,
    ConfigError,
    IngestError,
    NotRunningError,
    TradeValidationError,
    WriteError,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    "IngestError",
    "ConfigError",
    "TradeValidationError",
    "WriteError",
    "AlreadyRunningError",
    "NotRunningError",
]
