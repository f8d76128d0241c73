"""Pydantic schemas for scraper run records."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from cinewatch.models.scraper_run import AnomalyType, ScraperRunStatus


class ScraperRunResponse(BaseModel):
    """One scraper run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    cinema_id: str
    triggered_by: str
    started_at: datetime
    completed_at: datetime | None = None
    status: ScraperRunStatus
    screening_count: int
    baseline_count: int | None = None
    anomaly_type: AnomalyType | None = None
    anomaly_details: dict[str, Any] | None = None
    auto_fixed: bool = False
    auto_retried: bool = False
    fixed_by_ai: bool = False
    notes: str | None = None
    run_metadata: dict[str, Any] | None = None


class RunResolutionUpdate(BaseModel):
    """Resolution flags and notes; the only mutable parts of a run."""

    auto_fixed: bool | None = None
    auto_retried: bool | None = None
    fixed_by_ai: bool | None = None
    notes: str | None = None
