"""
Ticketry FastAPI Application.

Serves the plugin management API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from ticketry import __version__
from ticketry.api.routes import plugins
from ticketry.api.schemas import HealthResponse
from ticketry.config import settings
from ticketry.db.connection import (
    check_connection,
    dispose_engine,
    get_db,
    get_engine,
    init_db,
)
from ticketry.db.database import Database
from ticketry.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Connects to the database and makes sure the core tables exist before
    serving requests.
    """
    setup_logging(context="api")

    db = Database(settings)
    db.connect(engine=get_engine())
    try:
        init_db(db)
    finally:
        db.close()
    logger.info("Application startup complete")

    yield

    dispose_engine()
    logger.info("Application shutdown complete")


app = FastAPI(
    lifespan=lifespan,
    title="Ticketry API",
    description="Plugin management API for the Ticketry issue tracker",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API health check."""
    return {
        "status": "ok",
        "message": "Ticketry API is running",
        "version": __version__,
    }


@app.get("/health", response_model=HealthResponse)
async def health(db: Database = Depends(get_db)) -> HealthResponse:
    """Health check endpoint."""
    db_status = "healthy" if check_connection(db) else "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
    )


app.include_router(plugins.router, prefix="/plugins", tags=["plugins"])
