"""Scraper run history endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.database import get_db
from cinewatch.models import ScraperRun, ScraperRunStatus
from cinewatch.schemas import RunResolutionUpdate, ScraperRunResponse

router = APIRouter()


@router.get("/admin/runs", response_model=list[ScraperRunResponse])
async def get_runs(
    cinema_id: str | None = Query(None, description="Filter by cinema ID"),
    status: ScraperRunStatus | None = Query(None, description="Filter by run status"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of runs"),
    db: AsyncSession = Depends(get_db),
) -> list[ScraperRun]:
    """
    Get recent scraper runs, newest first.

    Args:
        cinema_id: Optional cinema filter
        status: Optional status filter
        limit: Maximum number of runs to return
        db: Database session

    Returns:
        List of scraper runs
    """
    query = select(ScraperRun).order_by(ScraperRun.started_at.desc(), ScraperRun.id.desc())
    if cinema_id:
        query = query.where(ScraperRun.cinema_id == cinema_id)
    if status:
        query = query.where(ScraperRun.status == status)

    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())


@router.patch("/admin/runs/{run_id}/resolution", response_model=ScraperRunResponse)
async def update_run_resolution(
    run_id: int,
    update: RunResolutionUpdate,
    db: AsyncSession = Depends(get_db),
) -> ScraperRun:
    """
    Record how an anomalous run was dealt with.

    Only the resolution flags and notes can change; counts and statuses are
    historical.
    """
    run = await db.get(ScraperRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")

    for name, value in update.model_dump(exclude_unset=True).items():
        if value is None and name != "notes":
            continue
        setattr(run, name, value)
    await db.commit()
    return run
