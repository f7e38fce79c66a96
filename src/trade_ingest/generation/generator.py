"""Trade generators that manufacture realistic synthetic trades.

This module provides an abstract interface for trade generators and a random
implementation that models per-symbol price random walks, small-size-heavy
trade amounts and trading-hours clustered timestamps.
"""

from __future__ import annotations

import math
import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from trade_ingest.exceptions import ConfigError
from trade_ingest.types import Symbol, Trade, TradeGenerationConfig, TradeSide


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TradeGenerator(ABC):
    """Abstract base class for trade generators.

    Generators do not enforce the global total themselves: callers clip the
    final batch to the remaining target.
    """

    @abstractmethod
    def generate_batch(self, count: int) -> list[Trade]:
        """Generate a batch of trades.

        :param count: Number of trades to generate (positive).
        :returns: List of exactly ``count`` trades.
        """
        ...

    @abstractmethod
    def get_total_trades(self) -> int:
        """Total number of trades a run should produce."""
        ...

    @abstractmethod
    def get_recommended_batch_size(self) -> int:
        """Batch size to use when writing to the sink."""
        ...


class RandomTradeGenerator(TradeGenerator):
    """Generator drawing every trade field from a seedable random source.

    Each symbol has a baseline price seeded in [50, 500). Every trade price
    is the baseline plus a uniform variation of up to 5%, after which the
    baseline moves by a uniform drift of up to 0.5%. Amounts follow
    ``floor(u**2 * 1000) + 1`` so small trades dominate. Timestamps are
    uniform over the configured date range with the time of day redrawn
    inside 14:00-21:00 UTC (US market hours, ignoring daylight saving).

    :param config: Trade generation configuration.
    :param rng: Random source; defaults to ``random.Random(config.random_seed)``.
    """

    BASELINE_MIN = 50.0
    BASELINE_SPAN = 450.0
    PRICE_VARIATION = 0.1  # full width, i.e. +/-5%
    PRICE_DRIFT = 0.01  # full width, i.e. +/-0.5%
    MAX_AMOUNT = 1000
    TRADING_HOURS_UTC = (14, 21)

    def __init__(
        self,
        config: TradeGenerationConfig,
        rng: random.Random | None = None,
    ) -> None:
        if not config.symbols:
            raise ConfigError("At least one symbol is required")
        if config.start_date >= config.end_date:
            raise ConfigError("'start_date' must be before 'end_date'")

        self.config = config
        self._rng = rng if rng is not None else random.Random(config.random_seed)
        self._symbols: list[Symbol] = list(config.symbols)
        self._start = _as_utc(config.start_date)
        self._end = _as_utc(config.end_date)
        self._range_ms = (self._end - self._start) // timedelta(milliseconds=1)
        self._baseline_prices = self._initialize_baseline_prices()

    def _initialize_baseline_prices(self) -> dict[Symbol, float]:
        """Seed a baseline price in [50, 500) for every configured symbol."""
        return {
            symbol: self.BASELINE_MIN + self._rng.random() * self.BASELINE_SPAN
            for symbol in self._symbols
        }

    def _random_price(self, symbol: Symbol) -> float:
        """Draw a price around the symbol's baseline and advance its random walk."""
        base_price = self._baseline_prices[symbol]

        variation = (self._rng.random() - 0.5) * self.PRICE_VARIATION
        price = base_price * (1 + variation)

        drift = (self._rng.random() - 0.5) * self.PRICE_DRIFT
        self._baseline_prices[symbol] = base_price * (1 + drift)

        return round(price, 2)

    def _random_amount(self) -> int:
        """Draw a trade size in [1, 1000], biased toward small sizes."""
        return math.floor(self._rng.random() ** 2 * self.MAX_AMOUNT) + 1

    def _random_timestamp(self) -> datetime:
        """Draw a timestamp in the configured range, clustered in trading hours."""
        offset_ms = math.floor(self._rng.random() * self._range_ms)
        moment = self._start + timedelta(milliseconds=offset_ms)

        first_hour, last_hour = self.TRADING_HOURS_UTC
        adjusted = moment.replace(
            hour=self._rng.randrange(first_hour, last_hour),
            minute=self._rng.randrange(60),
            second=self._rng.randrange(60),
            microsecond=self._rng.randrange(1000) * 1000,
        )

        # The override can only leave the range on its first or last day.
        if self._start <= adjusted <= self._end:
            return adjusted
        return moment

    def generate_batch(self, count: int) -> list[Trade]:
        """Generate a batch of random trades.

        :param count: Number of trades to generate.
        :returns: List of ``count`` trades.
        :raises ValueError: If ``count`` is not a positive integer.
        """
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ValueError(f"Batch size must be a positive integer, got {count!r}")

        trades: list[Trade] = []
        for _ in range(count):
            symbol = self._rng.choice(self._symbols)
            side = TradeSide.BUY if self._rng.random() < 0.5 else TradeSide.SELL
            trades.append(
                Trade(
                    symbol=symbol,
                    side=side,
                    price=self._random_price(symbol),
                    amount=self._random_amount(),
                    timestamp=self._random_timestamp(),
                )
            )

        return trades

    def get_total_trades(self) -> int:
        """Return the configured total trade count."""
        return self.config.total_trades

    def get_recommended_batch_size(self) -> int:
        """Return the configured batch size."""
        return self.config.batch_size
