"""Pydantic schemas for anomaly reports and AI verification."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from cinewatch.models.cinema_baseline import CinemaTier
from cinewatch.models.scraper_run import AnomalyType


class CinemaHealthResponse(BaseModel):
    """Anomaly status of one cinema."""

    model_config = ConfigDict(from_attributes=True)

    cinema_id: str
    cinema_name: str
    status: str  # "healthy", "anomaly" or "unknown"
    anomaly_detected: bool
    anomaly_type: AnomalyType | None = None
    should_block_scrape: bool
    warnings: list[str]
    today_count: int | None = None
    last_week_count: float | None = None
    percent_change: float | None = None
    tier: CinemaTier | None = None
    last_run_at: datetime | None = None


class HealthReportResponse(BaseModel):
    """Cross-cinema health check."""

    model_config = ConfigDict(from_attributes=True)

    checked_at: datetime
    healthy: int
    anomalies: int
    blocked: int
    unknown: int
    results: list[CinemaHealthResponse]


class VerifyRequest(BaseModel):
    """Request for an AI diagnosis of a detected anomaly."""

    cinema_id: str | None = None
    anomaly_type: AnomalyType | None = None
    today_count: int = 0
    last_week_count: int = 0


class VerifyResponse(BaseModel):
    """AI diagnosis; ``model`` is "cheap" or "strong"."""

    analysis: str
    confidence: float
    model: str
    suggested_action: str | None = None
