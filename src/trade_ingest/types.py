"""Core type definitions for the trade ingestion pipeline.

All data models use Pydantic BaseModel for automatic validation, JSON
serialization, and better error messages.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from trade_ingest.exceptions import TradeValidationError

# Type aliases for domain-specific identifiers
Symbol = NewType("Symbol", str)


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class FrozenModel(BaseModel):
    """Base model with frozen (immutable) configuration."""

    model_config = ConfigDict(frozen=True)


class WireModel(FrozenModel):
    """Frozen model serialized with camelCase keys for API consumers."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Trade Types
# ---------------------------------------------------------------------------


class TradeSide(str, Enum):
    """Side of a trade. The value is the lowercase tag written to the sink."""

    BUY = "buy"
    SELL = "sell"


class Trade(FrozenModel):
    """A single executed trade.

    Construction validates every field and raises
    :class:`~trade_ingest.exceptions.TradeValidationError` instead of
    pydantic's ``ValidationError`` when a field is unusable.

    :param symbol: Instrument symbol (e.g. AAPL).
    :param side: Side of the trade.
    :param price: Execution price, strictly positive.
    :param amount: Number of shares, strictly positive integer.
    :param timestamp: Execution time.
    """

    symbol: Symbol
    side: TradeSide
    price: float
    amount: int
    timestamp: datetime

    @model_validator(mode="before")
    @classmethod
    def _check_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        symbol = data.get("symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            raise TradeValidationError("Symbol is required")

        side = data.get("side")
        if isinstance(side, str) and not isinstance(side, TradeSide):
            try:
                side = TradeSide(side.lower())
            except ValueError:
                side = None
        if not isinstance(side, TradeSide):
            raise TradeValidationError(
                f"Side must be one of {[s.value for s in TradeSide]}"
            )

        price = data.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise TradeValidationError("Price must be a number")
        if not math.isfinite(price) or price <= 0:
            raise TradeValidationError("Price must be greater than zero")

        amount = data.get("amount")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TradeValidationError("Amount must be an integer")
        if amount <= 0:
            raise TradeValidationError("Amount must be greater than zero")

        if not isinstance(data.get("timestamp"), datetime):
            raise TradeValidationError("Valid timestamp is required")

        return {**data, "side": side}


def create_trade(
    symbol: str,
    side: TradeSide | str,
    price: float,
    amount: int,
    timestamp: datetime,
) -> Trade:
    """Create a validated trade.

    :param symbol: Instrument symbol.
    :param side: Side of the trade (enum member or ``"buy"``/``"sell"``).
    :param price: Execution price.
    :param amount: Number of shares.
    :param timestamp: Execution time.
    :returns: A new immutable Trade.
    :raises TradeValidationError: If any field is invalid.
    """
    return Trade(
        symbol=symbol,
        side=side,
        price=price,
        amount=amount,
        timestamp=timestamp,
    )


def format_trade(trade: Trade) -> str:
    """Render a trade as a single human-readable line."""
    ts = trade.timestamp.isoformat(timespec="milliseconds")
    return f"{ts} | {trade.symbol} | {trade.side.value} | {trade.price} | {trade.amount}"


# ---------------------------------------------------------------------------
# Run Types
# ---------------------------------------------------------------------------


class RunState(str, Enum):
    """Lifecycle state of the ingestion orchestrator."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERROR = "error"


class ProgressSnapshot(WireModel):
    """Point-in-time summary of an ingestion run.

    :param processed: Trades written so far.
    :param total: Target number of trades for the run.
    :param percentage: Completion ratio in percent (0-100).
    :param elapsed_ms: Wall-clock time since the run started.
    :param estimated_remaining_ms: Time left at the current throughput.
    :param trades_per_second: Current throughput.
    """

    processed: int
    total: int
    percentage: float
    elapsed_ms: float
    estimated_remaining_ms: float
    trades_per_second: float


class IngestionStatus(WireModel):
    """Polling view of the orchestrator.

    :param status: Current run state.
    :param progress: Latest progress snapshot, if any batch has been written.
    :param error: Failure description when the last run ended in error.
    """

    status: RunState = RunState.IDLE
    progress: ProgressSnapshot | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Configuration Types
# ---------------------------------------------------------------------------


class InfluxDBConfig(FrozenModel):
    """Connection settings for the InfluxDB sink.

    :param url: Base URL of the InfluxDB server.
    :param token: API token with write access to the bucket.
    :param org: Organization owning the bucket.
    :param bucket: Destination bucket for trade points.
    """

    url: str = "http://localhost:8086"
    token: str = "my-super-secret-auth-token"
    org: str = "ohlcv-poc"
    bucket: str = "trades"


class TradeGenerationConfig(FrozenModel):
    """Configuration for synthetic trade generation.

    :param total_trades: Number of trades a run should produce.
    :param batch_size: Trades generated and written per batch.
    :param start_date: Earliest trade timestamp (inclusive).
    :param end_date: Latest trade timestamp.
    :param symbols: Symbols to draw trades from.
    :param random_seed: Seed for reproducibility, or None for random.
    """

    total_trades: int = 300_000_000
    batch_size: int = 10_000
    start_date: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)
    end_date: datetime = datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
    symbols: list[Symbol] = Field(
        default_factory=lambda: [
            Symbol(s) for s in ("AAPL", "MSFT", "AMZN", "GOOGL", "META")
        ]
    )
    random_seed: int | None = None


class AppConfig(FrozenModel):
    """Top-level application configuration.

    :param host: Interface the HTTP API binds to.
    :param port: Port the HTTP API listens on.
    :param log_level: Logging level name.
    :param json_logs: Emit JSON logs instead of the console format.
    :param influxdb: Sink connection settings.
    :param trade_generation: Generator settings.
    """

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    json_logs: bool = False
    influxdb: InfluxDBConfig = Field(default_factory=InfluxDBConfig)
    trade_generation: TradeGenerationConfig = Field(
        default_factory=TradeGenerationConfig
    )


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

__all__ = [
    "Symbol",
    "FrozenModel",
    "WireModel",
    "TradeSide",
    "Trade",
    "create_trade",
    "format_trade",
    "RunState",
    "ProgressSnapshot",
    "IngestionStatus",
    "InfluxDBConfig",
    "TradeGenerationConfig",
    "AppConfig",
]
