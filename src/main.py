"""
Main application entry point for the Electricity Price Store service.
Initializes FastAPI app, database, background tasks, and starts the service.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from src.api.routes import router as api_router
from src.config import settings
from src.database.service import price_store
from src.logging_config import get_logger, setup_logging
from src.scheduler.backfill import backfill_runner
from src.scheduler.ingestion_scheduler import ingestion_scheduler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown procedures.
    """
    # Startup
    setup_logging()
    await price_store.init_database()

    shutdown = asyncio.Event()
    await ingestion_scheduler.start(shutdown)
    if settings.backfill_enabled:
        await backfill_runner.start(shutdown)
    logger.info("Application started")

    yield

    # Shutdown
    logger.info("Application stopping")
    shutdown.set()
    await backfill_runner.stop()
    await ingestion_scheduler.stop()
    await price_store.close()
    logger.info("Application stopped")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title="Electricity Price Store",
        description="Hourly electricity prices with gap-free range queries",
        version="1.0.0",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        lifespan=lifespan,
    )

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
