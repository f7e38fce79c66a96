"""In-memory sink writer for tests and dry runs."""

from __future__ import annotations

from typing import Sequence

from trade_ingest.exceptions import WriteError
from trade_ingest.sinks.base import SinkWriter
from trade_ingest.types import Trade


class InMemorySinkWriter(SinkWriter):
    """Sink writer that keeps written batches in memory.

    :param keep_trades: Store the trades themselves, not only the counts.
    :param fail_on_batch: 1-based batch number whose write should fail.
    :param error: Exception raised on the failing batch (defaults to WriteError).
    """

    def __init__(
        self,
        keep_trades: bool = True,
        fail_on_batch: int | None = None,
        error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.keep_trades = keep_trades
        self.fail_on_batch = fail_on_batch
        self.error = error
        self.batches: list[list[Trade]] = []
        self.batch_sizes: list[int] = []
        self.write_calls = 0

    @property
    def trades(self) -> list[Trade]:
        """All stored trades in write order."""
        return [trade for batch in self.batches for trade in batch]

    @property
    def total_written(self) -> int:
        """Number of trades accepted so far."""
        return sum(self.batch_sizes)

    def write_batch(self, trades: Sequence[Trade]) -> None:
        """Record a batch, or fail if this is the configured failing batch."""
        self._ensure_open()
        self.write_calls += 1

        if self.fail_on_batch is not None and self.write_calls == self.fail_on_batch:
            raise self.error or WriteError(
                f"Simulated write failure on batch {self.write_calls}"
            )

        self.batch_sizes.append(len(trades))
        if self.keep_trades:
            self.batches.append(list(trades))

    def _release(self) -> None:
        pass
