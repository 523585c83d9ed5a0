"""
FastAPI application entry point for the metric report service.

Configures logging, manages the database pool lifecycle and registers the
report router under /api/reports.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analytics_report import __version__
from analytics_report.api import api_router
from analytics_report.core.config import get_settings
from analytics_report.core.database import init_db, close_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Open the database pool on startup and close it on shutdown.

    Startup continues when the database is unreachable so CSV uploads and the
    health probe keep working.
    """
    logging.getLogger().setLevel(get_settings().log_level.upper())
    logger.info("Metric report API starting")
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    yield

    logger.info("Metric report API shutting down")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="Metric Report API",
    version=__version__,
    description=(
        "Rolling statistics, percentiles, anomaly flags, trend projections "
        "and derived labels over time-stamped metric observations."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
async def root():
    """
    API name, version and documentation links.
    """
    return {
        "name": "Metric Report API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "analytics_report.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
