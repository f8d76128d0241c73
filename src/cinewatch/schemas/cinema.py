"""Pydantic schemas for cinema monitoring configuration."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from cinewatch.models.cinema_baseline import CinemaTier
from cinewatch.models.screening import LinkStatus
from cinewatch.services.baseline import MAX_TOLERANCE_PERCENT, MIN_TOLERANCE_PERCENT


class CinemaConfigResponse(BaseModel):
    """Baseline configuration for one cinema."""

    model_config = ConfigDict(from_attributes=True)

    cinema_id: str
    tier: CinemaTier
    weekday_avg: float | None = None
    weekend_avg: float | None = None
    tolerance_percent: float | None = None
    effective_tolerance_percent: float
    manual_override: bool = False
    last_calculated: datetime | None = None
    notes: str | None = None


class CinemaConfigUpdate(BaseModel):
    """Operator changes to a cinema's baseline; omitted fields are left alone."""

    tier: CinemaTier | None = None
    tolerance_percent: float | None = Field(
        default=None, ge=MIN_TOLERANCE_PERCENT, le=MAX_TOLERANCE_PERCENT
    )
    weekday_avg: float | None = Field(default=None, ge=0)
    weekend_avg: float | None = Field(default=None, ge=0)
    manual_override: bool | None = None
    notes: str | None = None


class LinkCheckResponse(BaseModel):
    """Outcome of checking one screening's booking link."""

    model_config = ConfigDict(from_attributes=True)

    screening_id: int
    url: str
    status: LinkStatus
    http_status: int | None = None
    final_url: str | None = None
    error: str | None = None


class LinkCheckReport(BaseModel):
    cinema_id: str
    checked: int
    by_status: dict[str, int]
    results: list[LinkCheckResponse]
