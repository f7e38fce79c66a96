"""Synthetic trade generation."""

from trade_ingest.generation.generator import RandomTradeGenerator, TradeGenerator

__all__ = ["TradeGenerator", "RandomTradeGenerator"]
