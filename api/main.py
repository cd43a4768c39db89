
"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import events, health, stats
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import async_session_maker
from core.exceptions import ExporterNotReadyError, NonRetryableError, RetryableSetupError
from core.logging import setup_logging
from export.cache import SQLMetadataCache
from export.connector import ExportConnector
from export.tasks import APSchedulerTaskQueue
import asyncio
import logging

logger = logging.getLogger(__name__)

SETUP_RETRY_DELAY_SECONDS = 1.0

app = FastAPI(
    title="BigQuery Event Export",
    description="Buffers analytics events and streams them into BigQuery",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

app.include_router(events.router)
app.include_router(health.router)
app.include_router(stats.router)


def build_connector() -> ExportConnector:
    return ExportConnector(
        settings=settings,
        cache=SQLMetadataCache(async_session_maker),
        task_queue=APSchedulerTaskQueue(),
    )


async def setup_connector(connector: ExportConnector, max_attempts: int, retry_delay: float = SETUP_RETRY_DELAY_SECONDS):
    """
    Run connector setup, re-invoking it on transient failures.

    Any other setup error halts startup.
    """
    for attempt in range(max_attempts):
        try:
            await connector.setup()
            return
        except RetryableSetupError as e:
            if attempt == max_attempts - 1:
                logger.error(f"Setup failed after {max_attempts} attempts: {e.message}")
                raise
            delay = retry_delay * (2 ** attempt)
            logger.warning(
                f"Setup attempt {attempt + 1}/{max_attempts} failed: {e.message}. "
                f"Retrying in {delay} seconds"
            )
            await asyncio.sleep(delay)


@app.exception_handler(ExporterNotReadyError)
async def exporter_not_ready_handler(request: Request, exc: ExporterNotReadyError):
    return JSONResponse(status_code=503, content=exc.to_dict())


@app.exception_handler(NonRetryableError)
async def non_retryable_handler(request: Request, exc: NonRetryableError):
    logger.error(f"Request failed permanently: {exc.message}", extra={"error_context": exc.to_dict()})
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    setup_logging()
    logger.info("Starting BigQuery Event Export")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    connector = build_connector()
    app.state.connector = connector
    await setup_connector(connector, settings.SETUP_MAX_ATTEMPTS)


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down BigQuery Event Export")
    connector = getattr(app.state, "connector", None)
    if connector is not None:
        await connector.close()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "BigQuery Event Export",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "events": "/events",
            "batch": "/events/batch",
            "stats": "/stats"
        }
    }
