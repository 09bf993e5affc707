"""
FastAPI application for Planner Outlook Sync.

This is the main entry point for the HTTP API, providing:
- Outlook account linking and status
- Bulk sync jobs and their status
- Queued single-task sync and event removal
- Health endpoint
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from planner_sync import __version__
from planner_sync.api.dependencies import init_dispatcher, peek_dispatcher, shutdown_dispatcher
from planner_sync.api.middleware import RequestLoggingMiddleware
from planner_sync.api.models import HealthResponse
from planner_sync.api.outlook_routes import router as outlook_router
from planner_sync.config import get_settings
from planner_sync.services.outlook_sync import get_sync_service

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(settings.log_level)


async def _cleanup_jobs_periodically(interval: float) -> None:
    tracker = get_sync_service().tracker
    while True:
        await asyncio.sleep(interval)
        tracker.cleanup()


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()
    logger.info("Starting Planner Outlook Sync API")

    init_dispatcher(get_sync_service())
    cleanup_task = asyncio.create_task(
        _cleanup_jobs_periodically(settings.sync_job_cleanup_interval_seconds)
    )
    logger.info("Planner Outlook Sync API started")

    yield

    logger.info("Shutting down Planner Outlook Sync API")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await shutdown_dispatcher()


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Planner Outlook Sync API",
    description="""
# Planner Outlook Sync API

Mirrors planner tasks into a dedicated Outlook calendar per user.

## Workflows

### Connect
1. Obtain a refresh token through the Microsoft consent flow
2. **POST /outlook/link** - store it; an initial bulk sync starts
3. **GET /outlook/sync/{job_id}** - poll the job

### Keep in sync
- **POST /outlook/tasks/{task_id}/sync** - after a task is created or edited
- **DELETE /outlook/events/{event_id}** - after a task is deleted
- **POST /outlook/sync** - full resync, removes orphaned events

All endpoints identify the user by the `X-User-ID` header.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.include_router(outlook_router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
async def health_check() -> HealthResponse:
    dispatcher = peek_dispatcher()
    running = dispatcher is not None and dispatcher.running

    return HealthResponse(
        status="healthy" if running else "unhealthy",
        version=__version__,
        dispatcher_running=running,
        active_jobs=len(get_sync_service().tracker),
    )


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str = None, port: int = None, reload: bool = None):
    """Run the API server with Uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "planner_sync.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=settings.api_reload if reload is None else reload,
    )


if __name__ == "__main__":
    run_server()
