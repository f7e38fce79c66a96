"""HTTP control surface for the ingestion service.

Endpoints:
    GET  /api/status  Current run state and progress
    POST /api/start   Start an ingestion in the background (202, 409 if running)
    POST /api/stop    Request a cooperative stop (409 if not running)
    GET  /api/config  Target trade count and batch size
    GET  /health      Sink connectivity

Interactive OpenAPI documentation is served at ``/docs``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from trade_ingest import __version__
from trade_ingest.exceptions import AlreadyRunningError, NotRunningError
from trade_ingest.ingestion.orchestrator import IngestionOrchestrator, create_orchestrator
from trade_ingest.observability import get_logger
from trade_ingest.types import AppConfig

logger = get_logger(__name__, component="fastapi")

router = APIRouter()

SHUTDOWN_TIMEOUT_SECONDS = 30.0


def _orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


@router.get("/api/status", tags=["status"])
def get_status(request: Request) -> dict[str, Any]:
    """Return the current status of the trade ingestion process."""
    status = _orchestrator(request).status()
    return status.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.post("/api/start", tags=["ingestion"], status_code=202)
def start_ingestion(request: Request) -> JSONResponse:
    """Start the trade ingestion process in the background."""
    try:
        _orchestrator(request).start_background()
    except AlreadyRunningError as e:
        return JSONResponse(status_code=409, content={"error": str(e)})

    logger.info("ingestion_start_requested")
    return JSONResponse(status_code=202, content={"message": "Trade ingestion started"})


@router.post("/api/stop", tags=["ingestion"])
def stop_ingestion(request: Request) -> JSONResponse:
    """Request the running trade ingestion process to stop."""
    orchestrator = _orchestrator(request)
    try:
        orchestrator.ensure_running()
    except NotRunningError as e:
        return JSONResponse(status_code=409, content={"error": str(e)})

    orchestrator.stop()
    return JSONResponse(content={"message": "Trade ingestion stopped"})


@router.get("/api/config", tags=["config"])
def get_config(request: Request) -> dict[str, int]:
    """Return the generation targets used by each run."""
    generator = _orchestrator(request).generator
    return {
        "totalTrades": generator.get_total_trades(),
        "batchSize": generator.get_recommended_batch_size(),
    }


@router.get("/health", tags=["status"])
def health_check(request: Request) -> JSONResponse:
    """Report sink connectivity; 503 when the sink is unreachable."""
    sink_ok = _orchestrator(request).writer.ping()
    health_status = {
        "status": "healthy" if sink_ok else "unhealthy",
        "services": {"sink": sink_ok},
        "version": __version__,
    }
    return JSONResponse(status_code=200 if sink_ok else 503, content=health_status)


def create_app(
    config: AppConfig | None = None,
    orchestrator: IngestionOrchestrator | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    :param config: Application configuration, used when no orchestrator is given.
    :param orchestrator: Pre-built orchestrator (tests inject one with an
        in-memory sink).
    :returns: Configured FastAPI app. Shutting it down stops any active run
        and closes the sink writer.
    """
    if orchestrator is None:
        orchestrator = create_orchestrator(config or AppConfig())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("api_started")
        yield
        orchestrator.stop()
        orchestrator.join(timeout=SHUTDOWN_TIMEOUT_SECONDS)
        orchestrator.writer.close()
        logger.info("api_stopped")

    app = FastAPI(
        title="Trade Ingest API",
        description="API for generating and writing trade data to InfluxDB",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.include_router(router)
    return app
