"""Sink writers that persist batches of trades to a time-series store."""

from trade_ingest.sinks.base import SinkWriter
from trade_ingest.sinks.influx import InfluxDBSinkWriter, trade_to_point
from trade_ingest.sinks.memory import InMemorySinkWriter

__all__ = [
    "SinkWriter",
    "InfluxDBSinkWriter",
    "InMemorySinkWriter",
    "trade_to_point",
]
