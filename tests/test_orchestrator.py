"""Tests for the ingestion orchestrator."""

from __future__ import annotations

import pytest

from conftest import FakeClock, GatedWriter, RecordingListener, StubGenerator
from trade_ingest.exceptions import AlreadyRunningError, NotRunningError, WriteError
from trade_ingest.generation import RandomTradeGenerator
from trade_ingest.ingestion import (
    CancellationToken,
    IngestionListener,
    IngestionOrchestrator,
    LoggingListener,
    ProgressChannel,
    create_orchestrator,
)
from trade_ingest.sinks import InMemorySinkWriter
from trade_ingest.types import AppConfig, RunState, TradeGenerationConfig


def _orchestrator(
    generator: StubGenerator,
    writer: InMemorySinkWriter,
    recorder: RecordingListener | None = None,
) -> IngestionOrchestrator:
    channel = ProgressChannel()
    if recorder is not None:
        channel.subscribe(recorder)
    return IngestionOrchestrator(generator, writer, channel=channel, clock=FakeClock())


def test_cancellation_token() -> None:
    token = CancellationToken()
    assert not token.cancelled
    token.cancel()
    token.cancel()
    assert token.cancelled


class TestRunToCompletion:
    def test_even_batches(self, recorder: RecordingListener) -> None:
        """100 trades in batches of 10 give ten progress events then complete."""
        generator = StubGenerator(total=100, batch_size=10)
        writer = InMemorySinkWriter()
        orchestrator = _orchestrator(generator, writer, recorder)

        final = orchestrator.start()

        assert generator.requested == [10] * 10
        assert writer.batch_sizes == [10] * 10
        assert [s.processed for s in recorder.progress] == list(range(10, 101, 10))
        assert recorder.names[-1] == "complete"
        assert recorder.names.count("complete") == 1

        assert final.processed == 100
        assert final.total == 100
        assert final.percentage == 100.0
        assert final.estimated_remaining_ms == 0.0
        assert orchestrator.state is RunState.COMPLETED
        assert orchestrator.processed == 100

    def test_last_batch_is_clipped(self, recorder: RecordingListener) -> None:
        """25 trades in batches of 10 end with a batch of 5."""
        generator = StubGenerator(total=25, batch_size=10)
        writer = InMemorySinkWriter()
        orchestrator = _orchestrator(generator, writer, recorder)

        final = orchestrator.start()

        assert generator.requested == [10, 10, 5]
        assert writer.batch_sizes == [10, 10, 5]
        assert writer.total_written == 25
        assert [s.processed for s in recorder.progress] == [10, 20, 25]
        assert final.processed == 25

    def test_batch_larger_than_total(self) -> None:
        generator = StubGenerator(total=7, batch_size=100)
        writer = InMemorySinkWriter()
        _orchestrator(generator, writer).start()

        assert generator.requested == [7]

    def test_zero_total_completes_immediately(self, recorder: RecordingListener) -> None:
        generator = StubGenerator(total=0, batch_size=10)
        writer = InMemorySinkWriter()
        orchestrator = _orchestrator(generator, writer, recorder)

        final = orchestrator.start()

        assert generator.requested == []
        assert writer.write_calls == 0
        assert recorder.names == ["complete"]
        assert final.processed == 0
        assert final.percentage == 100.0
        assert orchestrator.state is RunState.COMPLETED

    def test_progress_uses_elapsed_time(self, recorder: RecordingListener) -> None:
        """The first batch is reported half a second after the start."""
        orchestrator = _orchestrator(
            StubGenerator(total=20, batch_size=10), InMemorySinkWriter(), recorder
        )
        orchestrator.start()

        first = recorder.progress[0]
        assert first.elapsed_ms == 500.0
        assert first.trades_per_second == 20.0
        assert first.percentage == 50.0
        assert first.estimated_remaining_ms == 500.0

    def test_status_after_completion(self) -> None:
        orchestrator = _orchestrator(StubGenerator(total=20, batch_size=10), InMemorySinkWriter())
        final = orchestrator.start()

        status = orchestrator.status()
        assert status.status is RunState.COMPLETED
        assert status.progress == final
        assert status.error is None

    def test_restart_resets_counters(self, recorder: RecordingListener) -> None:
        generator = StubGenerator(total=30, batch_size=10)
        writer = InMemorySinkWriter()
        orchestrator = _orchestrator(generator, writer, recorder)

        orchestrator.start()
        second = orchestrator.start()

        assert second.processed == 30
        assert writer.total_written == 60
        assert [s.processed for s in recorder.progress] == [10, 20, 30, 10, 20, 30]


class TestFailures:
    def test_write_failure_aborts_run(self, recorder: RecordingListener) -> None:
        """A failing third batch leaves 20 trades processed and the run in error."""
        generator = StubGenerator(total=100, batch_size=10)
        writer = InMemorySinkWriter(fail_on_batch=3)
        orchestrator = _orchestrator(generator, writer, recorder)

        with pytest.raises(WriteError):
            orchestrator.start()

        assert orchestrator.state is RunState.ERROR
        assert orchestrator.processed == 20
        assert writer.total_written == 20
        assert len(generator.requested) == 3
        assert recorder.names == ["progress", "progress", "error"]
        assert isinstance(recorder.events[-1][1], WriteError)
        assert orchestrator.last_error is recorder.events[-1][1]

        status = orchestrator.status()
        assert status.status is RunState.ERROR
        assert status.error == "Simulated write failure on batch 3"
        assert status.progress is not None
        assert status.progress.processed == 20

    def test_generator_failure_aborts_run(self, recorder: RecordingListener) -> None:
        generator = StubGenerator(total=100, batch_size=10, fail_on_call=2)
        writer = InMemorySinkWriter()
        orchestrator = _orchestrator(generator, writer, recorder)

        with pytest.raises(RuntimeError, match="generator exploded"):
            orchestrator.start()

        assert orchestrator.state is RunState.ERROR
        assert writer.batch_sizes == [10]
        assert recorder.names == ["progress", "error"]

    def test_listener_failure_aborts_run(self) -> None:
        class Broken(IngestionListener):
            def on_progress(self, snapshot) -> None:
                raise RuntimeError("listener broke")

        orchestrator = _orchestrator(StubGenerator(total=50, batch_size=10), InMemorySinkWriter())
        orchestrator.channel.subscribe(Broken())

        with pytest.raises(RuntimeError, match="listener broke"):
            orchestrator.start()
        assert orchestrator.state is RunState.ERROR

    def test_complete_listener_failure_ends_in_error(self, recorder: RecordingListener) -> None:
        """A listener failing on completion turns the run into an error."""

        class BrokenOnComplete(IngestionListener):
            def on_complete(self, snapshot) -> None:
                raise RuntimeError("complete listener broke")

        channel = ProgressChannel()
        channel.subscribe(BrokenOnComplete())
        channel.subscribe(recorder)
        orchestrator = IngestionOrchestrator(
            StubGenerator(total=20, batch_size=10),
            InMemorySinkWriter(),
            channel=channel,
            clock=FakeClock(),
        )

        with pytest.raises(RuntimeError, match="complete listener broke"):
            orchestrator.start()

        assert orchestrator.state is RunState.ERROR
        assert orchestrator.status().error == "complete listener broke"
        assert recorder.names == ["progress", "progress", "error"]

    def test_stopped_listener_failure_ends_in_error(self, recorder: RecordingListener) -> None:
        """A listener failing on stop turns the run into an error."""
        channel = ProgressChannel()
        orchestrator = IngestionOrchestrator(
            StubGenerator(total=100, batch_size=10),
            InMemorySinkWriter(),
            channel=channel,
            clock=FakeClock(),
        )

        class StopThenBreak(IngestionListener):
            def on_progress(self, snapshot) -> None:
                orchestrator.stop()

            def on_stopped(self) -> None:
                raise RuntimeError("stopped listener broke")

        channel.subscribe(StopThenBreak())
        channel.subscribe(recorder)

        with pytest.raises(RuntimeError, match="stopped listener broke"):
            orchestrator.start()

        assert orchestrator.state is RunState.ERROR
        assert orchestrator.processed == 10
        assert recorder.names == ["progress", "error"]

    def test_error_listener_failure_keeps_original_error(
        self, recorder: RecordingListener
    ) -> None:
        """A broken error listener must not mask the write failure."""

        class BrokenOnError(IngestionListener):
            def on_error(self, error: BaseException) -> None:
                raise RuntimeError("error listener broke")

        channel = ProgressChannel()
        channel.subscribe(BrokenOnError())
        channel.subscribe(recorder)
        orchestrator = IngestionOrchestrator(
            StubGenerator(total=100, batch_size=10),
            InMemorySinkWriter(fail_on_batch=2),
            channel=channel,
            clock=FakeClock(),
        )

        with pytest.raises(WriteError, match="batch 2"):
            orchestrator.start()

        assert orchestrator.state is RunState.ERROR
        assert recorder.names == ["progress", "error"]
        assert isinstance(recorder.events[-1][1], WriteError)

    def test_can_start_again_after_error(self) -> None:
        writer = InMemorySinkWriter(fail_on_batch=1)
        orchestrator = _orchestrator(StubGenerator(total=10, batch_size=10), writer)

        with pytest.raises(WriteError):
            orchestrator.start()

        final = orchestrator.start()
        assert final.processed == 10
        assert orchestrator.state is RunState.COMPLETED
        assert orchestrator.status().error is None


class TestStop:
    def test_stop_during_run(self, recorder: RecordingListener) -> None:
        """Stopping after the third batch ends the run with 30 trades written."""
        generator = StubGenerator(total=100, batch_size=10)
        writer = InMemorySinkWriter()
        orchestrator = _orchestrator(generator, writer, recorder)

        class StopAtThirty(IngestionListener):
            def on_progress(self, snapshot) -> None:
                if snapshot.processed == 30:
                    orchestrator.stop()

        orchestrator.channel.subscribe(StopAtThirty())

        final = orchestrator.start()

        assert final.processed == 30
        assert writer.total_written == 30
        assert orchestrator.state is RunState.STOPPED
        assert recorder.names == ["progress", "progress", "progress", "stopped"]

    def test_stop_is_idempotent(self, recorder: RecordingListener) -> None:
        orchestrator = _orchestrator(
            StubGenerator(total=100, batch_size=10), InMemorySinkWriter(), recorder
        )

        class StopTwice(IngestionListener):
            def on_progress(self, snapshot) -> None:
                orchestrator.stop()
                orchestrator.stop()

        orchestrator.channel.subscribe(StopTwice())
        final = orchestrator.start()

        assert recorder.names == ["progress", "stopped"]
        assert final.processed == 10
        assert orchestrator.processed == 10
        assert orchestrator.state is RunState.STOPPED

    def test_stop_when_idle_does_nothing(self, recorder: RecordingListener) -> None:
        orchestrator = _orchestrator(
            StubGenerator(total=10, batch_size=10), InMemorySinkWriter(), recorder
        )
        orchestrator.stop()

        assert orchestrator.state is RunState.IDLE
        assert recorder.events == []

        # A stop requested while idle must not cancel the next run.
        orchestrator.start()
        assert orchestrator.state is RunState.COMPLETED

    def test_ensure_running_when_idle(self) -> None:
        orchestrator = _orchestrator(StubGenerator(total=10, batch_size=10), InMemorySinkWriter())

        with pytest.raises(NotRunningError, match="not running"):
            orchestrator.ensure_running()
        with pytest.raises(NotRunningError):
            orchestrator.current_progress()


class TestConcurrency:
    def test_start_rejected_while_running(self) -> None:
        """A second start from inside the run is rejected without side effects."""
        generator = StubGenerator(total=30, batch_size=10)
        orchestrator = _orchestrator(generator, InMemorySinkWriter())
        rejections: list[Exception] = []
        live: list[int] = []

        class TryRestart(IngestionListener):
            def on_progress(self, snapshot) -> None:
                live.append(orchestrator.current_progress().processed)
                try:
                    orchestrator.start()
                except AlreadyRunningError as e:
                    rejections.append(e)

        orchestrator.channel.subscribe(TryRestart())
        final = orchestrator.start()

        assert len(rejections) == 3
        assert str(rejections[0]) == "Trade ingestion is already running"
        assert live == [10, 20, 30]
        assert final.processed == 30
        assert generator.requested == [10, 10, 10]

    def test_background_run_can_be_stopped(self, recorder: RecordingListener) -> None:
        writer = GatedWriter()
        orchestrator = _orchestrator(StubGenerator(total=100, batch_size=10), writer, recorder)

        thread = orchestrator.start_background()
        assert thread.daemon
        assert writer.entered.wait(timeout=5)
        assert orchestrator.state is RunState.RUNNING

        with pytest.raises(AlreadyRunningError):
            orchestrator.start_background()
        with pytest.raises(AlreadyRunningError):
            orchestrator.start()

        orchestrator.stop()
        writer.release.set()
        orchestrator.join(timeout=5)

        assert not thread.is_alive()
        assert orchestrator.state is RunState.STOPPED
        assert writer.total_written == 10
        assert recorder.names == ["progress", "stopped"]

    def test_background_failure_is_recorded(self) -> None:
        writer = InMemorySinkWriter(fail_on_batch=1)
        orchestrator = _orchestrator(StubGenerator(total=10, batch_size=10), writer)

        orchestrator.start_background()
        orchestrator.join(timeout=5)

        assert orchestrator.state is RunState.ERROR
        assert isinstance(orchestrator.last_error, WriteError)

    def test_join_without_background_run(self) -> None:
        orchestrator = _orchestrator(StubGenerator(total=10, batch_size=10), InMemorySinkWriter())
        orchestrator.join(timeout=0.1)


def test_create_orchestrator_wires_random_generator() -> None:
    """The factory should build a random generator and subscribe a logger."""
    config = AppConfig(
        trade_generation=TradeGenerationConfig(total_trades=25, batch_size=10, random_seed=5)
    )
    writer = InMemorySinkWriter()
    orchestrator = create_orchestrator(config, writer=writer)

    assert isinstance(orchestrator.generator, RandomTradeGenerator)
    assert orchestrator.writer is writer
    assert any(
        isinstance(listener, LoggingListener) for listener in orchestrator.channel.listeners
    )

    final = orchestrator.start()
    assert final.processed == 25
    assert writer.batch_sizes == [10, 10, 5]
