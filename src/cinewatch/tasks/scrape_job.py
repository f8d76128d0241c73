"""Scrape job that ingests screenings for every active cinema."""

import logging
from collections import defaultdict

from sqlalchemy import select

from cinewatch.database import AsyncSessionLocal
from cinewatch.models import Cinema, ScraperRun, ScraperRunStatus
from cinewatch.scrapers import CHAIN_REGISTRY
from cinewatch.services.ingestion import IngestionPipeline, ScraperNotConfiguredError

logger = logging.getLogger(__name__)


async def run_scrape_all(triggered_by: str = "scheduled") -> list[ScraperRun]:
    """Scrape all active cinemas, one ScraperRun each.

    Venues of the same chain are scraped in a single sequential pass so the
    chain's politeness limits hold across them. Creates its own DB session
    so it can be called from a background task or a script without
    depending on a request context.
    """
    logger.info("Starting scrape for all active cinemas")

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(Cinema).where(Cinema.is_active.is_(True)).order_by(Cinema.id)
        )
        cinemas = list(result.scalars().all())

        if not cinemas:
            logger.warning("No active cinemas found in database, skipping scrape")
            return []

        # Grouped by id; a rollback expires loaded cinemas, so each is re-fetched
        chains: dict[str, list[str]] = defaultdict(list)
        singles: list[str] = []
        for cinema in cinemas:
            if cinema.scraper_type in CHAIN_REGISTRY:
                chains[cinema.scraper_type].append(cinema.id)
            else:
                singles.append(cinema.id)

        logger.info(f"Scraping {len(singles)} cinemas and {len(chains)} chains")

        pipeline = IngestionPipeline(db)
        runs: list[ScraperRun] = []
        # Tallied as runs complete; a later rollback expires earlier runs
        failures = anomalies = written = 0

        def record(run: ScraperRun) -> None:
            nonlocal failures, anomalies, written
            runs.append(run)
            failures += run.status == ScraperRunStatus.FAILED
            anomalies += run.status == ScraperRunStatus.ANOMALY
            written += run.screening_count

        for chain_type, venue_ids in chains.items():
            try:
                venues = [await db.get(Cinema, venue_id) for venue_id in venue_ids]
                for run in await pipeline.ingest_chain(venues, triggered_by=triggered_by):
                    record(run)
            except Exception as e:
                logger.error(f"Error scraping chain {chain_type}: {e}", exc_info=True)
                await db.rollback()

        for cinema_id in singles:
            try:
                cinema = await db.get(Cinema, cinema_id)
                record(await pipeline.ingest(cinema, triggered_by=triggered_by))
            except ScraperNotConfiguredError as e:
                logger.warning(f"Skipping {cinema_id}: {e}")
            except Exception as e:
                logger.error(f"Error scraping {cinema_id}: {e}", exc_info=True)
                await db.rollback()

    logger.info(
        f"Scrape complete: {len(runs)} runs, {failures} failed, {anomalies} anomalies, "
        f"{written} screenings written"
    )
    return runs
