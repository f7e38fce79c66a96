"""Trade ingestion exception hierarchy.

All ingestion-specific exceptions derive from :class:`IngestError` so callers
can catch every ingestion-related error uniformly.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for ingestion-related exceptions.

    Derived exceptions should extend this class so that callers can catch all
    ingestion-specific errors uniformly.
    """


class ConfigError(IngestError):
    """Raised when configuration files, environment values or parameters are invalid."""


class TradeValidationError(IngestError):
    """Raised when a trade fails validation at construction.

    Named TradeValidationError to avoid conflict with pydantic's ValidationError.
    """


class WriteError(IngestError):
    """Raised when the sink rejects or fails to persist a batch of trades."""


class AlreadyRunningError(IngestError):
    """Raised when an ingestion run is started while another one is running."""


class NotRunningError(IngestError):
    """Raised when an operation requires an active ingestion run and there is none."""


__all__ = [
    "IngestError",
    "ConfigError",
    "TradeValidationError",
    "WriteError",
    "AlreadyRunningError",
    "NotRunningError",
]
