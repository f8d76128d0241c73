"""Cinema monitoring configuration and booking-link endpoints."""

from collections import Counter

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.database import get_db
from cinewatch.models import Cinema, CinemaBaseline
from cinewatch.schemas import (
    CinemaConfigResponse,
    CinemaConfigUpdate,
    LinkCheckReport,
    LinkCheckResponse,
)
from cinewatch.services.anomaly import drop_threshold
from cinewatch.services.baseline import BaselineTracker, InvalidBaselineConfig
from cinewatch.services.link_checker import DEFAULT_LIMIT, BookingLinkChecker

router = APIRouter()


def _config_response(baseline: CinemaBaseline) -> CinemaConfigResponse:
    return CinemaConfigResponse(
        cinema_id=baseline.cinema_id,
        tier=baseline.tier,
        weekday_avg=baseline.weekday_avg,
        weekend_avg=baseline.weekend_avg,
        tolerance_percent=baseline.tolerance_percent,
        effective_tolerance_percent=drop_threshold(baseline.tier, baseline.tolerance_percent),
        manual_override=baseline.manual_override,
        last_calculated=baseline.last_calculated,
        notes=baseline.notes,
    )


async def _get_cinema(db: AsyncSession, cinema_id: str) -> Cinema:
    cinema = await db.get(Cinema, cinema_id)
    if not cinema:
        raise HTTPException(status_code=404, detail="Cinema not found")
    return cinema


@router.get("/admin/cinemas/{cinema_id}/config", response_model=CinemaConfigResponse)
async def get_cinema_config(
    cinema_id: str,
    db: AsyncSession = Depends(get_db),
) -> CinemaConfigResponse:
    """
    Get a cinema's baseline configuration, creating a default one if missing.

    Args:
        cinema_id: Cinema ID
        db: Database session

    Returns:
        Tier, averages and tolerance for the cinema

    Raises:
        HTTPException: If cinema not found
    """
    cinema = await _get_cinema(db, cinema_id)
    baseline = await BaselineTracker(db).get_or_create(cinema)
    await db.commit()
    return _config_response(baseline)


@router.put("/admin/cinemas/{cinema_id}/config", response_model=CinemaConfigResponse)
async def update_cinema_config(
    cinema_id: str,
    update: CinemaConfigUpdate,
    db: AsyncSession = Depends(get_db),
) -> CinemaConfigResponse:
    """Change a cinema's tier, tolerance, averages or override flag."""
    cinema = await _get_cinema(db, cinema_id)
    try:
        baseline = await BaselineTracker(db).update_config(
            cinema, **update.model_dump(exclude_unset=True)
        )
    except InvalidBaselineConfig as e:
        raise HTTPException(status_code=400, detail=str(e))
    await db.commit()
    return _config_response(baseline)


@router.post(
    "/admin/cinemas/{cinema_id}/baseline/recalculate",
    response_model=CinemaConfigResponse,
)
async def recalculate_baseline(
    cinema_id: str,
    db: AsyncSession = Depends(get_db),
) -> CinemaConfigResponse:
    """Recompute averages from recent successful runs (no-op under manual override)."""
    cinema = await _get_cinema(db, cinema_id)
    baseline = await BaselineTracker(db).recalculate(cinema)
    await db.commit()
    return _config_response(baseline)


@router.post("/admin/cinemas/{cinema_id}/links/verify", response_model=LinkCheckReport)
async def verify_booking_links(
    cinema_id: str,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> LinkCheckReport:
    """
    Check booking links of upcoming screenings and store each link status.

    Links never checked go first, then the least recently checked.
    """
    await _get_cinema(db, cinema_id)
    results = await BookingLinkChecker(db).check_cinema(cinema_id, limit)
    await db.commit()
    return LinkCheckReport(
        cinema_id=cinema_id,
        checked=len(results),
        by_status=dict(Counter(r.status.value for r in results)),
        results=[LinkCheckResponse.model_validate(r) for r in results],
    )
