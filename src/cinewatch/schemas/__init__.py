"""Pydantic schemas for API requests and responses."""

from cinewatch.schemas.anomaly import (
    CinemaHealthResponse,
    HealthReportResponse,
    VerifyRequest,
    VerifyResponse,
)
from cinewatch.schemas.cinema import (
    CinemaConfigResponse,
    CinemaConfigUpdate,
    LinkCheckReport,
    LinkCheckResponse,
)
from cinewatch.schemas.run import RunResolutionUpdate, ScraperRunResponse

__all__ = [
    "CinemaConfigResponse",
    "CinemaConfigUpdate",
    "CinemaHealthResponse",
    "HealthReportResponse",
    "LinkCheckReport",
    "LinkCheckResponse",
    "RunResolutionUpdate",
    "ScraperRunResponse",
    "VerifyRequest",
    "VerifyResponse",
]
