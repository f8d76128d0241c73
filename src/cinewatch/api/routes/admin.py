"""Admin API endpoints for manual operations."""

import logging
from collections import defaultdict

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.database import get_db
from cinewatch.models import AnomalyType, Cinema, ScraperRun, ScraperRunStatus
from cinewatch.scrapers import CHAIN_REGISTRY
from cinewatch.services.ingestion import IngestionPipeline, ScraperNotConfiguredError
from cinewatch.tasks.scrape_job import run_scrape_all

logger = logging.getLogger(__name__)
router = APIRouter()


class ScrapeRequest(BaseModel):
    """Request model for triggering a scrape."""

    cinema_ids: list[str]
    triggered_by: str = "manual"


class CinemaScrapeResult(BaseModel):
    """Result for a single cinema scrape."""

    cinema_id: str
    cinema_name: str
    success: bool
    run_id: int | None = None
    status: ScraperRunStatus | None = None
    screening_count: int = 0
    anomaly_type: AnomalyType | None = None
    error: str | None = None


class ScrapeResponse(BaseModel):
    """Response for scrape operation."""

    status: str
    results: list[CinemaScrapeResult]
    total_screenings: int


@router.post("/admin/scrape", response_model=ScrapeResponse)
async def trigger_scrape(
    request: ScrapeRequest,
    db: AsyncSession = Depends(get_db),
) -> ScrapeResponse:
    """
    Manually trigger a scrape for specific cinemas.

    Each cinema is scraped, validated and upserted, and gets its own
    ScraperRun. Requested venues of the same chain are scraped in one
    sequential pass, as the scheduled job does. A failure at one cinema or
    chain is reported in its results and does not stop the others.

    Note: This is a synchronous operation that may take several seconds.
    """
    stmt = select(Cinema).where(Cinema.id.in_(request.cinema_ids)).order_by(Cinema.id)
    result = await db.execute(stmt)
    cinemas = result.scalars().all()
    # Snapshot ids and names; a rollback below expires every loaded cinema
    names = {c.id: c.name for c in cinemas}

    if not names:
        raise HTTPException(status_code=404, detail="No cinemas found with provided IDs")

    chains: dict[str, list[str]] = defaultdict(list)
    singles: list[str] = []
    for cinema in cinemas:
        if cinema.scraper_type in CHAIN_REGISTRY:
            chains[cinema.scraper_type].append(cinema.id)
        else:
            singles.append(cinema.id)

    pipeline = IngestionPipeline(db)
    results: dict[str, CinemaScrapeResult] = {}

    for chain_type, venue_ids in chains.items():
        logger.info(f"Scraping {len(venue_ids)} {chain_type} venues")
        try:
            venues = [await db.get(Cinema, venue_id) for venue_id in venue_ids]
            runs = await pipeline.ingest_chain(venues, triggered_by=request.triggered_by)
        except ScraperNotConfiguredError as e:
            results.update({v: _error_result(v, names[v], e) for v in venue_ids})
            continue
        except Exception as e:
            logger.error(f"Error scraping chain {chain_type}: {e}", exc_info=True)
            await db.rollback()
            results.update({v: _error_result(v, names[v], e) for v in venue_ids})
            continue

        for run in runs:
            results[run.cinema_id] = _run_result(run, names[run.cinema_id])

    for cinema_id in singles:
        logger.info(f"Scraping {names[cinema_id]} ({cinema_id})")
        try:
            cinema = await db.get(Cinema, cinema_id)
            run = await pipeline.ingest(cinema, triggered_by=request.triggered_by)
        except ScraperNotConfiguredError as e:
            results[cinema_id] = _error_result(cinema_id, names[cinema_id], e)
            continue
        except Exception as e:
            logger.error(f"Error scraping {names[cinema_id]}: {e}", exc_info=True)
            await db.rollback()
            results[cinema_id] = _error_result(cinema_id, names[cinema_id], e)
            continue

        results[cinema_id] = _run_result(run, names[cinema_id])

    ordered = [results[cinema_id] for cinema_id in names if cinema_id in results]
    return ScrapeResponse(
        status="completed",
        results=ordered,
        total_screenings=sum(r.screening_count for r in ordered),
    )


def _run_result(run: ScraperRun, cinema_name: str) -> CinemaScrapeResult:
    failed = run.status == ScraperRunStatus.FAILED
    return CinemaScrapeResult(
        cinema_id=run.cinema_id,
        cinema_name=cinema_name,
        success=not failed,
        run_id=run.id,
        status=run.status,
        screening_count=run.screening_count,
        anomaly_type=run.anomaly_type,
        error=(run.anomaly_details or {}).get("error_message") if failed else None,
    )


def _error_result(cinema_id: str, cinema_name: str, error: Exception) -> CinemaScrapeResult:
    return CinemaScrapeResult(
        cinema_id=cinema_id,
        cinema_name=cinema_name,
        success=False,
        error=str(error),
    )


@router.post("/admin/scrape-all")
async def trigger_scrape_all(background_tasks: BackgroundTasks) -> dict[str, str]:
    """Trigger a full scrape of all active cinemas as a background task.

    Returns immediately; the scrape runs asynchronously.
    """
    background_tasks.add_task(run_scrape_all, "manual")
    return {"status": "started"}
