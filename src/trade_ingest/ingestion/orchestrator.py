"""Ingestion orchestrator driving the generate -> write loop.

The loop is strictly sequential: batch ``k + 1`` is generated only after the
sink has accepted batch ``k``, so at most one batch is in flight and the sink's
``write_batch`` latency is the only backpressure.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Callable

from trade_ingest.exceptions import AlreadyRunningError, NotRunningError
from trade_ingest.ingestion.progress import (
    LoggingListener,
    ProgressChannel,
    compute_final_snapshot,
    compute_snapshot,
)
from trade_ingest.observability import get_logger
from trade_ingest.types import IngestionStatus, ProgressSnapshot, RunState

if TYPE_CHECKING:
    import random

    from trade_ingest.generation.generator import TradeGenerator
    from trade_ingest.sinks.base import SinkWriter
    from trade_ingest.types import AppConfig


class CancellationToken:
    """Cooperative cancellation flag checked at batch boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Repeated calls have no further effect."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class IngestionOrchestrator:
    """Runs one ingestion at a time from a generator into a sink writer.

    Example usage::

        from trade_ingest.config import load_config
        from trade_ingest.generation import RandomTradeGenerator
        from trade_ingest.ingestion import IngestionOrchestrator
        from trade_ingest.sinks import InfluxDBSinkWriter

        config = load_config("ingest.yaml")
        generator = RandomTradeGenerator(config.trade_generation)

        with InfluxDBSinkWriter(config.influxdb) as writer:
            orchestrator = IngestionOrchestrator(generator, writer)
            final = orchestrator.start()

        print(f"Wrote {final.processed} trades")

    :param generator: Source of trade batches and of the run's target sizes.
    :param writer: Sink receiving each batch.
    :param channel: Event channel; a new one is created when omitted.
    :param clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        generator: TradeGenerator,
        writer: SinkWriter,
        channel: ProgressChannel | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.generator = generator
        self.writer = writer
        self.channel = channel or ProgressChannel()
        self._clock = clock

        self._lock = threading.Lock()
        self._state = RunState.IDLE
        self._token: CancellationToken | None = None
        self._thread: threading.Thread | None = None

        self._processed = 0
        self._total = 0
        self._started_at = 0.0
        self._last_snapshot: ProgressSnapshot | None = None
        self._last_error: BaseException | None = None

        self._log = get_logger(__name__, component="orchestrator")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def processed(self) -> int:
        """Trades written by the current or most recent run."""
        return self._processed

    @property
    def total(self) -> int:
        """Target of the current or most recent run."""
        return self._total

    @property
    def last_error(self) -> BaseException | None:
        """Failure that ended the most recent run, if any."""
        return self._last_error

    def status(self) -> IngestionStatus:
        """Get current orchestrator status.

        :returns: Run state, latest progress snapshot and error description.
        """
        return IngestionStatus(
            status=self._state,
            progress=self._last_snapshot,
            error=str(self._last_error) if self._last_error is not None else None,
        )

    def ensure_running(self) -> None:
        """Raise :class:`NotRunningError` unless a run is active."""
        if self._state is not RunState.RUNNING:
            raise NotRunningError("Trade ingestion is not running")

    def current_progress(self) -> ProgressSnapshot:
        """Live progress of the active run.

        :raises NotRunningError: If no run is active.
        """
        self.ensure_running()
        return compute_snapshot(self._processed, self._total, self._elapsed_ms())

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> ProgressSnapshot:
        """Run an ingestion to completion, cancellation or failure.

        :returns: Final snapshot (100% on completion, last progress on stop).
        :raises AlreadyRunningError: If a run is already active.
        :raises Exception: Whatever the generator, writer or a listener raised;
            the run is left in ``RunState.ERROR``.
        """
        token = self._begin_run()
        return self._run(token)

    def start_background(self) -> threading.Thread:
        """Start an ingestion on a daemon thread.

        The already-running check happens before this method returns, so a
        rejected start raises here rather than in the thread.

        :returns: The thread running the ingestion.
        :raises AlreadyRunningError: If a run is already active.
        """
        token = self._begin_run()
        thread = threading.Thread(
            target=self._run_in_background,
            args=(token,),
            name="trade-ingestion",
            daemon=True,
        )
        self._thread = thread
        thread.start()
        return thread

    def stop(self) -> None:
        """Request cooperative cancellation of the active run.

        The loop observes the request before starting its next batch. Does
        nothing when no run is active.
        """
        with self._lock:
            token = self._token if self._state is RunState.RUNNING else None

        if token is not None and not token.cancelled:
            token.cancel()
            self._log.info("stop_requested", processed=self._processed)

    def join(self, timeout: float | None = None) -> None:
        """Wait for a background run to finish."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _begin_run(self) -> CancellationToken:
        with self._lock:
            if self._state is RunState.RUNNING:
                raise AlreadyRunningError("Trade ingestion is already running")

            token = CancellationToken()
            self._state = RunState.RUNNING
            self._token = token
            self._processed = 0
            self._total = self.generator.get_total_trades()
            self._started_at = self._clock()
            self._last_snapshot = None
            self._last_error = None
        return token

    def _finish(self, state: RunState, error: BaseException | None = None) -> None:
        with self._lock:
            self._state = state
            self._last_error = error
            self._token = None

    def _elapsed_ms(self) -> float:
        return (self._clock() - self._started_at) * 1000

    def _run(self, token: CancellationToken) -> ProgressSnapshot:
        total = self._total
        batch_size = self.generator.get_recommended_batch_size()
        self._log.info("ingestion_started", total=total, batch_size=batch_size)

        try:
            while self._processed < total and not token.cancelled:
                current_batch = min(batch_size, total - self._processed)

                trades = self.generator.generate_batch(current_batch)
                self.writer.write_batch(trades)

                self._processed += current_batch
                snapshot = compute_snapshot(self._processed, total, self._elapsed_ms())
                self._last_snapshot = snapshot
                self.channel.publish_progress(snapshot)

            # The state only leaves RUNNING once every listener has the event.
            if token.cancelled:
                snapshot = self._last_snapshot or compute_snapshot(
                    self._processed, total, self._elapsed_ms()
                )
                self.channel.publish_stopped()
                self._finish(RunState.STOPPED)
                return snapshot

            final = compute_final_snapshot(self._processed, total, self._elapsed_ms())
            self._last_snapshot = final
            self.channel.publish_complete(final)
            self._finish(RunState.COMPLETED)
            return final
        except Exception as e:
            self._log.error(
                "ingestion_aborted", processed=self._processed, error=str(e)
            )
            self._finish(RunState.ERROR, error=e)
            self.channel.publish_error(e)
            raise

    def _run_in_background(self, token: CancellationToken) -> None:
        try:
            self._run(token)
        except Exception:
            # The failure was already published on the channel.
            self._log.exception("background_ingestion_failed")


def create_orchestrator(
    config: AppConfig,
    writer: SinkWriter | None = None,
    rng: random.Random | None = None,
) -> IngestionOrchestrator:
    """Build an orchestrator wired to a random generator and a logging listener.

    :param config: Application configuration.
    :param writer: Sink writer; defaults to an InfluxDB writer from ``config``.
    :param rng: Random source for the generator.
    :returns: A ready-to-start orchestrator.
    """
    from trade_ingest.generation.generator import RandomTradeGenerator
    from trade_ingest.sinks.influx import InfluxDBSinkWriter

    generator = RandomTradeGenerator(config.trade_generation, rng=rng)
    if writer is None:
        writer = InfluxDBSinkWriter(config.influxdb)

    channel = ProgressChannel()
    channel.subscribe(LoggingListener())
    return IngestionOrchestrator(generator, writer, channel=channel)
