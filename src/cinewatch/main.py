"""FastAPI application entry point."""

import logging

from fastapi import FastAPI

from cinewatch.api.routes import admin, anomalies, cinemas, health, runs
from cinewatch.config import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Cinewatch API",
    description="Screening ingestion, validation and anomaly detection for London cinemas",
    version="0.1.0",
)

# Include routers
app.include_router(health.router)
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(anomalies.router, prefix="/api", tags=["anomalies"])
app.include_router(cinemas.router, prefix="/api", tags=["cinemas"])
app.include_router(runs.router, prefix="/api", tags=["runs"])
