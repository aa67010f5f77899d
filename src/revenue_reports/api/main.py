"""FastAPI application for the revenue report service."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from revenue_reports.clients.postgres_client import PostgresClient

from .config import get_settings
from .routes.health import router as health_router
from .routes.reports import router as reports_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the Postgres client at startup, clean up at shutdown."""
    settings = get_settings()

    logger.info("lifespan.startup")

    postgres = PostgresClient(settings.DATABASE_URL)
    await postgres.connect()
    if not await postgres.verify_connectivity():
        logger.warning("lifespan.postgres_connectivity_failed")

    app.state.postgres = postgres
    app.state.persist_reports = settings.PERSIST_REPORTS

    logger.info("lifespan.ready")
    yield

    logger.info("lifespan.shutdown")
    await postgres.close()


app = FastAPI(
    title="revenue-reports",
    description="Builds revenue pivot and forecast reports from CRM deal snapshots",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(reports_router)
