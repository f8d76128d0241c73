"""Ingestion pipeline: scrape → validate → diff → upsert → record the run.

Failures are contained at the smallest scope. A scraper that raises gives a
``failed`` run, a write that fails is counted and skipped, and the run
records how many distinct screenings were actually written. A scrape that
returns nothing for a cinema with stored screenings writes nothing.
Screenings that vanish from a later scrape are left in place.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.models import AnomalyType, Cinema, ScraperRun, ScraperRunStatus, Screening
from cinewatch.scrapers import get_chain_scraper, get_scraper
from cinewatch.scrapers.base import BaseScraper, ChainScraper
from cinewatch.scrapers.models import RawScreening
from cinewatch.services.anomaly import AnomalyDetector
from cinewatch.services.film_matcher import FilmMatcher, FilmResolver
from cinewatch.services.scrape_diff import ScrapeDiffer, ScrapeDiffReport
from cinewatch.services.validator import ScreeningValidator, ValidationSummary, parse_start_time
from cinewatch.utils.dates import LOCAL_TZ, utcnow

logger = logging.getLogger(__name__)

# Columns overwritten when a screening is seen again
MUTABLE_FIELDS = (
    "screen_name",
    "format_tags",
    "event_type",
    "event_description",
    "booking_url",
    "has_subtitles",
    "has_audio_description",
    "is_relaxed",
    "source_id",
    "raw_title",
    "last_updated_at",
)

CONFLICT_KEY = ("film_id", "cinema_id", "start_time")

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class ScraperNotConfiguredError(Exception):
    """No adapter can be built for the cinema's scraper configuration."""


@dataclass
class WriteOutcome:
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    # Later screenings in the batch that landed on a row already written by it
    merged: int = 0

    @property
    def written(self) -> int:
        return self.inserted + self.updated


class IngestionPipeline:
    """Makes the canonical store reflect one adapter's output and records a ScraperRun."""

    def __init__(
        self,
        db: AsyncSession,
        film_resolver: FilmResolver | None = None,
        detector: AnomalyDetector | None = None,
        validator: ScreeningValidator | None = None,
        differ: ScrapeDiffer | None = None,
    ) -> None:
        self.db = db
        self.film_resolver = film_resolver or FilmMatcher(db)
        self.detector = detector or AnomalyDetector(db)
        self.validator = validator or ScreeningValidator()
        self.differ = differ or ScrapeDiffer(db)

    async def ingest(
        self,
        cinema: Cinema,
        scraper: BaseScraper | None = None,
        triggered_by: str = "manual",
    ) -> ScraperRun:
        """
        Scrape one cinema and ingest the result.

        Raises:
            ScraperNotConfiguredError: if no adapter is given and none can be built
        """
        if scraper is None:
            scraper = get_scraper(cinema.scraper_type, cinema.id, cinema.scraper_config)
            if scraper is None:
                raise ScraperNotConfiguredError(
                    f"No scraper found for type: {cinema.scraper_type}"
                )

        started_at = utcnow()
        clock = time.monotonic()
        try:
            raw = await scraper.scrape()
        except Exception as e:
            logger.error(f"Scrape failed for {cinema.id}: {e}", exc_info=True)
            return await self.record_failure(cinema, started_at, triggered_by, str(e), clock)

        logger.info(f"Found {len(raw)} raw screenings for {cinema.name}")
        return await self.ingest_screenings(cinema, raw, triggered_by, started_at, clock)

    async def ingest_chain(
        self,
        cinemas: list[Cinema],
        chain_scraper: ChainScraper | None = None,
        triggered_by: str = "manual",
    ) -> list[ScraperRun]:
        """
        Scrape a chain's venues in one sequential pass and ingest each venue separately.

        A venue whose scrape failed arrives as an empty list, which the
        detector then reports as zero results.
        """
        if not cinemas:
            return []

        venue_for = {c.id: (c.scraper_config or {}).get("venue_id", c.id) for c in cinemas}
        if chain_scraper is None:
            scraper_type = cinemas[0].scraper_type
            chain_scraper = get_chain_scraper(scraper_type, list(venue_for.values()))
            if chain_scraper is None:
                raise ScraperNotConfiguredError(f"No chain scraper found for type: {scraper_type}")

        started_at = utcnow()
        clock = time.monotonic()
        try:
            by_venue = await chain_scraper.scrape_venues(list(venue_for.values()))
        except Exception as e:
            logger.error(f"Chain scrape failed: {e}", exc_info=True)
            return [
                await self.record_failure(c, started_at, triggered_by, str(e), clock) for c in cinemas
            ]

        runs = []
        for cinema in cinemas:
            raw = by_venue.get(venue_for[cinema.id], [])
            runs.append(await self.ingest_screenings(cinema, raw, triggered_by, started_at, clock))
        return runs

    async def ingest_screenings(
        self,
        cinema: Cinema,
        raw: list[RawScreening],
        triggered_by: str = "manual",
        started_at: datetime | None = None,
        clock: float | None = None,
    ) -> ScraperRun:
        """Validate, upsert and record a run for screenings already scraped."""
        started_at = started_at or utcnow()
        clock = clock if clock is not None else time.monotonic()

        report = self.validator.validate_batch(raw)
        diff = await self.differ.diff(cinema.id, report.accepted)
        if diff.should_block_scrape:
            logger.error(f"Not writing screenings for {cinema.id}: {diff.warnings}")
            outcome = WriteOutcome()
        else:
            outcome = await self.upsert_screenings(cinema.id, report.accepted)

        if report.accepted and outcome.failed == len(report.accepted):
            status = ScraperRunStatus.FAILED
        elif outcome.failed:
            status = ScraperRunStatus.PARTIAL
        else:
            status = ScraperRunStatus.SUCCESS

        run = ScraperRun(
            cinema_id=cinema.id,
            triggered_by=triggered_by,
            started_at=started_at,
            completed_at=utcnow(),
            status=status,
            screening_count=outcome.written,
            run_metadata=self._metadata(clock, len(raw), report.summary, outcome, diff),
        )
        if status == ScraperRunStatus.FAILED:
            run.anomaly_type = AnomalyType.ERROR
            run.anomaly_details = {"error_message": f"All {outcome.failed} screening writes failed"}
        else:
            await self.detector.evaluate_run(run, cinema)

        return await self._save(run, cinema)

    async def record_failure(
        self,
        cinema: Cinema,
        started_at: datetime,
        triggered_by: str,
        error_message: str,
        clock: float | None = None,
    ) -> ScraperRun:
        run = ScraperRun(
            cinema_id=cinema.id,
            triggered_by=triggered_by,
            started_at=started_at,
            completed_at=utcnow(),
            status=ScraperRunStatus.FAILED,
            screening_count=0,
            anomaly_type=AnomalyType.ERROR,
            anomaly_details={"error_message": error_message},
            run_metadata={
                "duration_seconds": round(time.monotonic() - clock, 2) if clock is not None else None
            },
        )
        return await self._save(run, cinema)

    async def _save(self, run: ScraperRun, cinema: Cinema) -> ScraperRun:
        self.db.add(run)
        await self.db.commit()
        logger.info(
            f"Run for {cinema.name}: {run.status.value}, {run.screening_count} screenings"
            + (f" ({run.anomaly_type.value})" if run.anomaly_type else "")
        )
        return run

    def _metadata(
        self,
        clock: float,
        raw_count: int,
        summary: ValidationSummary,
        outcome: WriteOutcome,
        diff: ScrapeDiffReport,
    ) -> dict:
        return {
            "duration_seconds": round(time.monotonic() - clock, 2),
            "raw_count": raw_count,
            "validation": summary.as_dict(),
            "inserted": outcome.inserted,
            "updated": outcome.updated,
            "failed_writes": outcome.failed,
            "merged_duplicates": outcome.merged,
            "scrape_diff": diff.as_dict(),
        }

    async def upsert_screenings(self, cinema_id: str, screenings: list[RawScreening]) -> WriteOutcome:
        """Write each screening in its own savepoint so one failure can't sink the batch."""
        outcome = WriteOutcome()
        written: set[tuple[str, datetime]] = set()

        for screening in screenings:
            try:
                async with self.db.begin_nested():
                    film_id = await self.film_resolver.resolve_or_create_film(
                        screening.title, screening.year
                    )
                    key = (film_id, self.start_time_utc(screening))
                    inserted = await self.upsert_screening(cinema_id, film_id, screening, utcnow())
            except Exception as e:
                outcome.failed += 1
                logger.error(
                    f"Error writing screening '{screening.title}' at {cinema_id}: {e}",
                    exc_info=True,
                )
                continue

            if key in written:
                outcome.merged += 1
            elif inserted:
                outcome.inserted += 1
            else:
                outcome.updated += 1
            written.add(key)

        return outcome

    async def upsert_screening(
        self,
        cinema_id: str,
        film_id: str,
        screening: RawScreening,
        now: datetime,
    ) -> bool:
        """
        Insert or update one screening atomically.

        Returns:
            True if a new row was created, False if an existing one was updated
        """
        start_time = self.start_time_utc(screening)

        dialect = self.db.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Upsert is not supported on {dialect}")

        stmt = insert(Screening).values(
            film_id=film_id,
            cinema_id=cinema_id,
            start_time=start_time,
            screen_name=screening.screen_name,
            format_tags=screening.format_tags,
            event_type=screening.event_type,
            event_description=screening.event_description,
            booking_url=screening.booking_url,
            has_subtitles=screening.has_subtitles,
            has_audio_description=screening.has_audio_description,
            is_relaxed=screening.is_relaxed,
            source_id=screening.source_id,
            raw_title=screening.title,
            first_seen_at=now,
            last_updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=list(CONFLICT_KEY),
            set_={name: stmt.excluded[name] for name in MUTABLE_FIELDS},
        ).returning(Screening.first_seen_at, Screening.last_updated_at)

        result = await self.db.execute(stmt)
        first_seen_at, last_updated_at = result.one()
        return first_seen_at == last_updated_at

    @staticmethod
    def start_time_utc(screening: RawScreening) -> datetime:
        start_time = parse_start_time(screening.start_time, LOCAL_TZ)
        if start_time is None:
            raise ValueError(f"Unusable start time: {screening.start_time!r}")
        return start_time.astimezone(timezone.utc)
