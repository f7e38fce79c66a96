#!/usr/bin/env python3
"""Command-line interface for the trade ingestion service."""

from __future__ import annotations

import argparse
import signal
import sys
from typing import Any

from trade_ingest.ingestion.progress import IngestionListener
from trade_ingest.types import ProgressSnapshot


class ConsoleProgressListener(IngestionListener):
    """Print a progress line each time another whole percent is reached."""

    def __init__(self) -> None:
        self._last_percent = -1

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        percent = int(snapshot.percentage)
        if percent == self._last_percent:
            return
        self._last_percent = percent
        remaining_s = snapshot.estimated_remaining_ms / 1000
        print(
            f"   {percent:3d}% | {snapshot.processed:,}/{snapshot.total:,} trades | "
            f"{snapshot.trades_per_second:,.0f} trades/s | ~{remaining_s:,.0f}s left"
        )


def _apply_overrides(config: Any, args: argparse.Namespace) -> Any:
    """Apply CLI overrides to the trade generation section."""
    from trade_ingest.config import validate_trade_generation

    overrides: dict[str, Any] = {}
    if args.total is not None:
        overrides["total_trades"] = args.total
    if args.batch_size is not None:
        overrides["batch_size"] = args.batch_size
    if args.seed is not None:
        overrides["random_seed"] = args.seed

    if not overrides:
        return config

    section = {**config.trade_generation.model_dump(), **overrides}
    return config.model_copy(
        update={"trade_generation": validate_trade_generation(section)}
    )


def cmd_ingest(args: argparse.Namespace) -> int:
    """Run a single ingestion in the foreground."""
    from trade_ingest.config import load_config
    from trade_ingest.exceptions import ConfigError
    from trade_ingest.ingestion import create_orchestrator
    from trade_ingest.observability import setup_logging
    from trade_ingest.sinks import InfluxDBSinkWriter, InMemorySinkWriter

    try:
        config = _apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    setup_logging(level=config.log_level, json_logs=config.json_logs)

    generation = config.trade_generation
    print("=" * 60)
    print("TRADE INGESTION")
    print("=" * 60)
    print(f"Total:       {generation.total_trades:,}")
    print(f"Batch size:  {generation.batch_size:,}")
    print(f"Symbols:     {', '.join(str(s) for s in generation.symbols)}")
    print(
        f"Date Range:  {generation.start_date.isoformat()} to {generation.end_date.isoformat()}"
    )
    if args.dry_run:
        print("Sink:        in-memory (dry run)")
        writer = InMemorySinkWriter(keep_trades=False)
    else:
        print(f"Sink:        {config.influxdb.url} (bucket {config.influxdb.bucket})")
        writer = InfluxDBSinkWriter(config.influxdb)

    orchestrator = create_orchestrator(config, writer=writer)
    orchestrator.channel.subscribe(ConsoleProgressListener())

    def signal_handler(signum: int, frame: Any) -> None:
        print("\n🛑 Stopping ingestion after the current batch...")
        orchestrator.stop()

    original_sigint = signal.signal(signal.SIGINT, signal_handler)
    original_sigterm = signal.signal(signal.SIGTERM, signal_handler)

    print("\n🚀 Ingesting...")
    try:
        with writer:
            final = orchestrator.start()
    except Exception as e:
        print(f"\n❌ Ingestion failed after {orchestrator.processed:,} trades: {e}")
        return 1
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)

    print("\n" + "=" * 60)
    print(f"RESULT: {orchestrator.state.value.upper()}")
    print("=" * 60)
    print(f"Processed:   {final.processed:,} / {final.total:,}")
    print(f"Elapsed:     {final.elapsed_ms / 1000:,.2f}s")
    print(f"Throughput:  {final.trades_per_second:,.0f} trades/s")

    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP control API."""
    import uvicorn

    from trade_ingest.api import create_app
    from trade_ingest.config import load_config
    from trade_ingest.exceptions import ConfigError
    from trade_ingest.observability import setup_logging

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    setup_logging(level=config.log_level, json_logs=config.json_logs)

    host = args.host or config.host
    port = args.port or config.port
    uvicorn.run(
        create_app(config=config),
        host=host,
        port=port,
        log_level=config.log_level.lower(),
    )
    return 0


def cmd_sample(args: argparse.Namespace) -> int:
    """Print a handful of generated trades."""
    from trade_ingest.config import load_config
    from trade_ingest.exceptions import ConfigError
    from trade_ingest.generation import RandomTradeGenerator
    from trade_ingest.types import format_trade

    if args.count < 1:
        print("Error: count must be a positive integer")
        return 1

    try:
        config = _apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return 1

    generator = RandomTradeGenerator(config.trade_generation)
    for trade in generator.generate_batch(args.count):
        print(format_trade(trade))

    return 0


def _add_generation_overrides(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", help="Path to YAML configuration file")
    parser.add_argument("--total", type=int, help="Override total trade count")
    parser.add_argument("--batch-size", type=int, help="Override batch size")
    parser.add_argument("--seed", type=int, help="Random seed")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Synthetic trade ingestion CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Ingest command
    ingest_parser = subparsers.add_parser(
        "ingest", help="Generate trades and write them to the sink"
    )
    _add_generation_overrides(ingest_parser)
    ingest_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Write to an in-memory sink instead of InfluxDB",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP control API")
    serve_parser.add_argument("-c", "--config", help="Path to YAML configuration file")
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")

    # Sample command
    sample_parser = subparsers.add_parser("sample", help="Print generated trades")
    sample_parser.add_argument(
        "-n", "--count", type=int, default=10, help="Number of trades (default: 10)"
    )
    _add_generation_overrides(sample_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "ingest":
        return cmd_ingest(args)
    elif args.command == "serve":
        return cmd_serve(args)
    elif args.command == "sample":
        return cmd_sample(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
