"""InfluxDB sink writer.

Each trade becomes one point::

    trade,side=<buy|sell>,symbol=<SYMBOL> amount=<int>i,price=<float> <epoch ms>
"""

from __future__ import annotations

from typing import Any, Sequence

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write.retry import WritesRetry
from influxdb_client.client.write_api import SYNCHRONOUS

from trade_ingest.exceptions import WriteError
from trade_ingest.observability import get_logger
from trade_ingest.sinks.base import SinkWriter
from trade_ingest.types import InfluxDBConfig, Trade

MEASUREMENT = "trade"


def trade_to_point(trade: Trade) -> Point:
    """Convert a trade to an InfluxDB point.

    :param trade: The trade to convert.
    :returns: Point in the ``trade`` measurement at millisecond precision.
    """
    return (
        Point(MEASUREMENT)
        .tag("symbol", str(trade.symbol))
        .tag("side", trade.side.value)
        .field("price", float(trade.price))
        .field("amount", int(trade.amount))
        .time(trade.timestamp, WritePrecision.MS)
    )


def default_retry_policy() -> WritesRetry:
    """Bounded retries with jittered exponential backoff (delays in seconds)."""
    return WritesRetry(
        total=3,
        retry_interval=1,
        max_retry_delay=15,
        jitter_interval=1,
        exponential_base=2,
    )


class InfluxDBSinkWriter(SinkWriter):
    """Sink writer backed by the InfluxDB v2 synchronous write API.

    :param config: InfluxDB connection settings.
    :param client: Pre-built client, mainly for tests. When omitted a client
        is created from ``config`` with :func:`default_retry_policy`.
    """

    def __init__(
        self,
        config: InfluxDBConfig,
        client: Any | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self._client = client or InfluxDBClient(
            url=config.url,
            token=config.token,
            org=config.org,
            retries=default_retry_policy(),
        )
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        self._log = get_logger(
            __name__, component="influxdb-writer", bucket=config.bucket
        )

    def write_batch(self, trades: Sequence[Trade]) -> None:
        """Write trades as points and wait for the server to accept them.

        :param trades: Trades to write.
        :raises WriteError: If the writer is closed or the write fails.
        """
        self._ensure_open()
        if not trades:
            return

        points = [trade_to_point(trade) for trade in trades]
        try:
            self._write_api.write(
                bucket=self.config.bucket,
                org=self.config.org,
                record=points,
                write_precision=WritePrecision.MS,
            )
        except Exception as e:
            self._log.error("batch_write_failed", points=len(points), error=str(e))
            raise WriteError(f"Failed to write {len(points)} trades: {e}") from e

        self._log.debug("batch_written", points=len(points))

    def ping(self) -> bool:
        """Check that the InfluxDB server is reachable."""
        if self.closed:
            return False
        try:
            return bool(self._client.ping())
        except Exception as e:
            self._log.warning("ping_failed", error=str(e))
            return False

    def _release(self) -> None:
        try:
            self._write_api.close()
            self._client.close()
        except Exception as e:
            raise WriteError(f"Failed to close InfluxDB client: {e}") from e
        self._log.info("writer_closed")
