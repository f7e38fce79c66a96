"""Shared fixtures for trade ingestion tests."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Sequence

import pytest
import structlog

from trade_ingest.generation import TradeGenerator
from trade_ingest.ingestion import IngestionListener
from trade_ingest.sinks import InMemorySinkWriter
from trade_ingest.types import (
    ProgressSnapshot,
    Symbol,
    Trade,
    TradeGenerationConfig,
    TradeSide,
)

CONFIG_ENV_VARS = (
    "HOST",
    "PORT",
    "LOG_LEVEL",
    "JSON_LOGS",
    "INFLUXDB_URL",
    "INFLUXDB_TOKEN",
    "INFLUXDB_ORG",
    "INFLUXDB_BUCKET",
    "TOTAL_TRADES",
    "BATCH_SIZE",
    "START_DATE",
    "END_DATE",
    "SYMBOLS",
    "RANDOM_SEED",
)


def make_trade(**overrides: Any) -> Trade:
    """Build a valid trade, overriding any field."""
    fields: dict[str, Any] = {
        "symbol": Symbol("AAPL"),
        "side": TradeSide.BUY,
        "price": 150.25,
        "amount": 100,
        "timestamp": datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Trade(**fields)


class StubGenerator(TradeGenerator):
    """Generator returning copies of one trade and recording requested sizes."""

    def __init__(self, total: int, batch_size: int, fail_on_call: int | None = None):
        self.total = total
        self.batch_size = batch_size
        self.fail_on_call = fail_on_call
        self.requested: list[int] = []

    def generate_batch(self, count: int) -> list[Trade]:
        self.requested.append(count)
        if self.fail_on_call is not None and len(self.requested) == self.fail_on_call:
            raise RuntimeError("generator exploded")
        trade = make_trade()
        return [trade] * count

    def get_total_trades(self) -> int:
        return self.total

    def get_recommended_batch_size(self) -> int:
        return self.batch_size


class RecordingListener(IngestionListener):
    """Listener that records every event as ``(name, payload)``."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    @property
    def progress(self) -> list[ProgressSnapshot]:
        return [payload for name, payload in self.events if name == "progress"]

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        self.events.append(("progress", snapshot))

    def on_complete(self, snapshot: ProgressSnapshot) -> None:
        self.events.append(("complete", snapshot))

    def on_error(self, error: BaseException) -> None:
        self.events.append(("error", error))

    def on_stopped(self) -> None:
        self.events.append(("stopped", None))


class GatedWriter(InMemorySinkWriter):
    """In-memory writer that blocks inside ``write_batch`` until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def write_batch(self, trades: Sequence[Trade]) -> None:
        self.entered.set()
        if not self.release.wait(timeout=5):
            raise TimeoutError("gate was never released")
        super().write_batch(trades)


class FakeClock:
    """Monotonic clock advancing by a fixed step on every reading."""

    def __init__(self, step: float = 0.5) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any logging configuration a test installed."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every configuration environment variable."""
    for var in CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def generation_config() -> TradeGenerationConfig:
    return TradeGenerationConfig(
        total_trades=100,
        batch_size=10,
        start_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        end_date=datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc),
        symbols=[Symbol(s) for s in ("AAPL", "MSFT", "AMZN", "GOOGL", "META")],
        random_seed=42,
    )


@pytest.fixture
def recorder() -> RecordingListener:
    return RecordingListener()
