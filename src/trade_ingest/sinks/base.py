"""Abstract sink writer interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import Sequence

from trade_ingest.exceptions import WriteError
from trade_ingest.types import Trade


class SinkWriter(ABC):
    """Abstract base class for batched writes to a time-series store.

    ``write_batch`` returns once the whole batch has been accepted by the
    store or raises a single :class:`~trade_ingest.exceptions.WriteError`.
    Buffering and retries, if any, happen inside the implementation and are
    never reported as partial success.

    Writers are closed exactly once, either explicitly or by leaving a
    ``with`` block; writes after close raise ``WriteError``.
    """

    def __init__(self) -> None:
        self._closed = False

    @abstractmethod
    def write_batch(self, trades: Sequence[Trade]) -> None:
        """Write a batch of trades.

        :param trades: Trades to persist, in order.
        :raises WriteError: If the store rejects or fails to persist the batch.
        """
        ...

    @abstractmethod
    def _release(self) -> None:
        """Drain buffered state and release the underlying connection."""
        ...

    @property
    def closed(self) -> bool:
        """Whether ``close`` has been called."""
        return self._closed

    def ping(self) -> bool:
        """Check that the store is reachable. The default only checks the writer is open."""
        return not self._closed

    def close(self) -> None:
        """Flush pending data and release the connection.

        Calling ``close`` on an already closed writer does nothing.
        """
        if self._closed:
            return
        self._closed = True
        self._release()

    def _ensure_open(self) -> None:
        if self._closed:
            raise WriteError(f"{type(self).__name__} is closed")

    def __enter__(self) -> SinkWriter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
