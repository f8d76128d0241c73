"""Anomaly report and verification endpoints."""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.database import get_db
from cinewatch.models import Cinema, Screening
from cinewatch.schemas import (
    CinemaHealthResponse,
    HealthReportResponse,
    VerifyRequest,
    VerifyResponse,
)
from cinewatch.services.anomaly import AnomalyDetector
from cinewatch.services.verifier import AnomalyVerifier, CinemaContext, VerificationError
from cinewatch.utils.dates import local_date, utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


def get_verifier() -> AnomalyVerifier:
    return AnomalyVerifier()


@router.get("/admin/anomalies", response_model=HealthReportResponse)
async def list_anomalies(
    budget_seconds: float | None = Query(None, gt=0, description="Overall time budget"),
    db: AsyncSession = Depends(get_db),
) -> HealthReportResponse:
    """
    Check every active cinema for anomalies.

    Cinemas not reached within the budget are reported as unknown.
    """
    report = await AnomalyDetector(db).check_all(budget_seconds)
    await db.commit()
    return HealthReportResponse(
        checked_at=report.checked_at,
        healthy=report.healthy,
        anomalies=report.anomalies,
        blocked=report.blocked,
        unknown=report.unknown,
        results=[CinemaHealthResponse.model_validate(r) for r in report.results],
    )


@router.get("/admin/anomalies/{cinema_id}", response_model=CinemaHealthResponse)
async def get_cinema_anomaly(
    cinema_id: str,
    db: AsyncSession = Depends(get_db),
) -> CinemaHealthResponse:
    """
    Anomaly status of a single cinema.

    Args:
        cinema_id: Cinema ID

    Returns:
        Health of the cinema's most recent completed run

    Raises:
        HTTPException: If cinema not found
    """
    cinema = await db.get(Cinema, cinema_id)
    if not cinema:
        raise HTTPException(status_code=404, detail="Cinema not found")

    health = await AnomalyDetector(db).check_cinema(cinema)
    await db.commit()
    return CinemaHealthResponse.model_validate(health)


@router.post("/admin/anomalies/verify", response_model=VerifyResponse)
async def verify_anomaly(
    request: VerifyRequest,
    db: AsyncSession = Depends(get_db),
    verifier: AnomalyVerifier = Depends(get_verifier),
) -> VerifyResponse:
    """
    Ask an AI model to diagnose an anomaly.

    The answer is advisory; no run or scraper state is changed.
    """
    if not request.cinema_id or request.anomaly_type is None:
        raise HTTPException(status_code=400, detail="Missing required fields")

    cinema = await db.get(Cinema, request.cinema_id)
    if not cinema:
        raise HTTPException(status_code=404, detail="Cinema not found")

    now = utcnow()
    recent = await db.execute(
        select(func.count(Screening.id)).where(
            Screening.cinema_id == cinema.id,
            Screening.start_time >= now - timedelta(days=7),
            Screening.start_time <= now,
        )
    )
    context = CinemaContext(
        cinema_id=cinema.id,
        name=cinema.name,
        website=cinema.website,
        chain=cinema.chain,
        recent_count=recent.scalar_one(),
        today=local_date(now),
    )

    try:
        verdict = await verifier.verify(
            context,
            request.anomaly_type.value,
            request.today_count,
            request.last_week_count,
        )
    except VerificationError:
        raise HTTPException(status_code=500, detail="Failed to analyze anomaly")

    return VerifyResponse(
        analysis=verdict.analysis,
        confidence=verdict.confidence,
        model=verdict.model,
        suggested_action=verdict.suggested_action,
    )
