"""Progress notifications for ingestion runs.

Listeners subscribe to a :class:`ProgressChannel` and are called
synchronously, in registration order, on the thread running the ingestion
loop. A listener only sees events published after it subscribed.
"""

from __future__ import annotations

import threading

from trade_ingest.observability import get_logger
from trade_ingest.types import ProgressSnapshot


def compute_snapshot(processed: int, total: int, elapsed_ms: float) -> ProgressSnapshot:
    """Derive throughput and completion figures for a run.

    :param processed: Trades written so far.
    :param total: Target number of trades.
    :param elapsed_ms: Milliseconds since the run started.
    :returns: Snapshot with percentage, throughput and remaining time.
    """
    elapsed_ms = max(elapsed_ms, 0.0)
    trades_per_second = processed / (elapsed_ms / 1000) if elapsed_ms > 0 else 0.0
    remaining = max(total - processed, 0)
    estimated_remaining_ms = (
        remaining / trades_per_second * 1000 if trades_per_second > 0 else 0.0
    )
    percentage = processed / total * 100 if total > 0 else 100.0

    return ProgressSnapshot(
        processed=processed,
        total=total,
        percentage=percentage,
        elapsed_ms=elapsed_ms,
        estimated_remaining_ms=estimated_remaining_ms,
        trades_per_second=trades_per_second,
    )


def compute_final_snapshot(
    processed: int, total: int, elapsed_ms: float
) -> ProgressSnapshot:
    """Snapshot reported on completion: 100% done, nothing remaining."""
    snapshot = compute_snapshot(processed, total, elapsed_ms)
    return snapshot.model_copy(
        update={"percentage": 100.0, "estimated_remaining_ms": 0.0}
    )


class IngestionListener:
    """Observer of ingestion lifecycle events.

    Every run produces zero or more ``on_progress`` calls followed by exactly
    one of ``on_complete``, ``on_error`` or ``on_stopped``. Override the hooks
    you need; the defaults do nothing.
    """

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        """Called after each batch has been written."""
        pass

    def on_complete(self, snapshot: ProgressSnapshot) -> None:
        """Called once when the target has been reached."""
        pass

    def on_error(self, error: BaseException) -> None:
        """Called once when the run aborts on a failure."""
        pass

    def on_stopped(self) -> None:
        """Called once when the run ends because a stop was requested."""
        pass


class ProgressChannel:
    """Registry of listeners with synchronous, ordered delivery."""

    def __init__(self) -> None:
        self._listeners: list[IngestionListener] = []
        self._lock = threading.Lock()
        self._log = get_logger(__name__, component="progress-channel")

    @property
    def listeners(self) -> tuple[IngestionListener, ...]:
        """Currently registered listeners, in registration order."""
        with self._lock:
            return tuple(self._listeners)

    def subscribe(self, listener: IngestionListener) -> IngestionListener:
        """Register a listener for subsequent events.

        :param listener: Listener to add.
        :returns: The same listener, for convenient chaining.
        """
        with self._lock:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: IngestionListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish_progress(self, snapshot: ProgressSnapshot) -> None:
        for listener in self.listeners:
            listener.on_progress(snapshot)

    def publish_complete(self, snapshot: ProgressSnapshot) -> None:
        for listener in self.listeners:
            listener.on_complete(snapshot)

    def publish_error(self, error: BaseException) -> None:
        """Deliver a run failure to every listener.

        A listener raising from ``on_error`` is logged and skipped so the
        remaining listeners still see the failure and the caller still gets
        the original error.
        """
        for listener in self.listeners:
            try:
                listener.on_error(error)
            except Exception:
                self._log.exception(
                    "error_listener_failed", listener=type(listener).__name__
                )

    def publish_stopped(self) -> None:
        for listener in self.listeners:
            listener.on_stopped()


class LoggingListener(IngestionListener):
    """Listener that writes lifecycle events to the structured log."""

    def __init__(self) -> None:
        self._log = get_logger(__name__, component="ingestion-events")

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        self._log.debug(
            "batch_progress",
            processed=snapshot.processed,
            total=snapshot.total,
            percentage=round(snapshot.percentage, 2),
            trades_per_second=round(snapshot.trades_per_second, 1),
        )

    def on_complete(self, snapshot: ProgressSnapshot) -> None:
        self._log.info(
            "ingestion_completed",
            processed=snapshot.processed,
            elapsed_ms=round(snapshot.elapsed_ms, 1),
            trades_per_second=round(snapshot.trades_per_second, 1),
        )

    def on_error(self, error: BaseException) -> None:
        self._log.error("ingestion_failed", error=str(error), error_type=type(error).__name__)

    def on_stopped(self) -> None:
        self._log.info("ingestion_stopped")
