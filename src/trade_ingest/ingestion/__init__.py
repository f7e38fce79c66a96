"""Batch ingestion: orchestration loop and progress notifications."""

from trade_ingest.ingestion.orchestrator import (
    CancellationToken,
    IngestionOrchestrator,
    create_orchestrator,
)
from trade_ingest.ingestion.progress import (
    IngestionListener,
    LoggingListener,
    ProgressChannel,
    compute_final_snapshot,
    compute_snapshot,
)

__all__ = [
    "CancellationToken",
    "IngestionOrchestrator",
    "create_orchestrator",
    "IngestionListener",
    "LoggingListener",
    "ProgressChannel",
    "compute_snapshot",
    "compute_final_snapshot",
]
