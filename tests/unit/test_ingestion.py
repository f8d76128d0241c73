"""Unit tests for the ingestion pipeline, run against SQLite."""

from datetime import datetime, time, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from cinewatch.models import AnomalyType, Cinema, ScraperRun, ScraperRunStatus, Screening
from cinewatch.scrapers.models import RawScreening
from cinewatch.services.film_matcher import FilmMatcher
from cinewatch.services.ingestion import IngestionPipeline, ScraperNotConfiguredError
from cinewatch.utils.dates import LOCAL_TZ, as_utc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def evening(days_ahead: int, hour: int = 19, minute: int = 30) -> datetime:
    day = datetime.now(LOCAL_TZ).date() + timedelta(days=days_ahead)
    return datetime.combine(day, time(hour, minute), tzinfo=LOCAL_TZ)


def make_cinema(id: str = "castle-cinema", chain: str | None = None, scraper_type: str = "castle") -> Cinema:
    return Cinema(
        id=id,
        name=id.replace("-", " ").title(),
        chain=chain,
        scraper_type=scraper_type,
        scraper_config={"venue_id": id} if chain else None,
    )


def make_screening(
    title: str = "Nosferatu",
    days_ahead: int = 2,
    booking_url: str = "https://thecastlecinema.com/bookings/1/",
    source_id: str | None = None,
) -> RawScreening:
    return RawScreening(
        title=title,
        start_time=evening(days_ahead),
        booking_url=booking_url,
        screen_name="Screen 1",
        source_id=source_id,
    )


def make_scraper(screenings: list[RawScreening] | None = None, error: Exception | None = None) -> MagicMock:
    scraper = MagicMock()
    scraper.scrape = AsyncMock(return_value=screenings or [], side_effect=error)
    return scraper


class FailingResolver:
    """Resolver that refuses some titles."""

    def __init__(self, db, bad_titles: set[str]) -> None:
        self.matcher = FilmMatcher(db)
        self.bad_titles = bad_titles

    async def resolve_or_create_film(self, title: str, year: int | None = None) -> str:
        if title in self.bad_titles:
            raise RuntimeError(f"cannot resolve {title}")
        return await self.matcher.resolve_or_create_film(title, year)


async def screening_count(db, cinema_id: str = "castle-cinema") -> int:
    result = await db.execute(
        select(func.count()).select_from(Screening).where(Screening.cinema_id == cinema_id)
    )
    return result.scalar_one()


@pytest.fixture
async def cinema(db_session) -> Cinema:
    cinema = make_cinema()
    db_session.add(cinema)
    await db_session.commit()
    return cinema


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


class TestIngest:
    async def test_writes_screenings_and_records_run(self, db_session, cinema) -> None:
        scraper = make_scraper([make_screening("Nosferatu"), make_screening("Aftersun", days_ahead=3)])

        run = await IngestionPipeline(db_session).ingest(cinema, scraper, triggered_by="test")

        assert run.id is not None
        assert run.status == ScraperRunStatus.SUCCESS
        assert run.screening_count == 2
        assert run.triggered_by == "test"
        assert as_utc(run.started_at) <= as_utc(run.completed_at)
        assert run.run_metadata["inserted"] == 2
        assert run.run_metadata["updated"] == 0
        assert run.run_metadata["validation"]["valid"] == 2
        assert await screening_count(db_session) == 2

    async def test_reingesting_is_idempotent(self, db_session, cinema) -> None:
        screenings = [make_screening("Nosferatu"), make_screening("Aftersun", days_ahead=3)]
        pipeline = IngestionPipeline(db_session)

        await pipeline.ingest(cinema, make_scraper(screenings))
        first = (await db_session.execute(select(Screening).order_by(Screening.id))).scalars().all()
        first_seen = {s.id: s.first_seen_at for s in first}

        run = await pipeline.ingest(cinema, make_scraper(screenings))

        assert await screening_count(db_session) == 2
        assert run.screening_count == 2
        assert run.run_metadata["inserted"] == 0
        assert run.run_metadata["updated"] == 2
        rows = (
            await db_session.execute(
                select(Screening.id, Screening.first_seen_at, Screening.last_updated_at)
            )
        ).all()
        for screening_id, first_seen_at, last_updated_at in rows:
            assert first_seen_at == first_seen[screening_id]
            assert last_updated_at >= first_seen_at

    async def test_update_overwrites_mutable_fields(self, db_session, cinema) -> None:
        pipeline = IngestionPipeline(db_session)
        await pipeline.ingest(cinema, make_scraper([make_screening(booking_url="https://a.example/1")]))
        await pipeline.ingest(cinema, make_scraper([make_screening(booking_url="https://b.example/1")]))

        urls = (await db_session.execute(select(Screening.booking_url))).scalars().all()
        assert urls == ["https://b.example/1"]

    async def test_invalid_screenings_are_not_written(self, db_session, cinema) -> None:
        scraper = make_scraper(
            [
                make_screening("Nosferatu"),
                make_screening("X"),
                make_screening("Aftersun", booking_url="https://example.com/book/undefined"),
            ]
        )

        run = await IngestionPipeline(db_session).ingest(cinema, scraper)

        assert run.screening_count == 1
        assert run.run_metadata["validation"]["rejected"] == 2
        assert run.run_metadata["validation"]["errors_by_type"] == {
            "title_too_short": 1,
            "malformed_booking_url": 1,
        }
        assert await screening_count(db_session) == 1

    async def test_duplicate_source_ids_are_written_once(self, db_session, cinema) -> None:
        scraper = make_scraper(
            [
                make_screening("Nosferatu", source_id="castle-1"),
                make_screening("Nosferatu", source_id="castle-1"),
            ]
        )

        run = await IngestionPipeline(db_session).ingest(cinema, scraper)

        assert run.screening_count == 1
        assert run.run_metadata["validation"]["duplicates"] == 1

    async def test_same_film_and_start_with_different_source_ids_counts_once(self, db_session, cinema) -> None:
        scraper = make_scraper(
            [
                make_screening("Paris, Texas", source_id="a"),
                make_screening("Paris, Texas", source_id="b"),
            ]
        )

        run = await IngestionPipeline(db_session).ingest(cinema, scraper)

        assert run.screening_count == 1
        assert run.run_metadata["inserted"] == 1
        assert run.run_metadata["updated"] == 0
        assert run.run_metadata["merged_duplicates"] == 1
        assert await screening_count(db_session) == 1
        source_ids = (await db_session.execute(select(Screening.source_id))).scalars().all()
        assert source_ids == ["b"]

    async def test_scraper_exception_records_failed_run(self, db_session, cinema) -> None:
        run = await IngestionPipeline(db_session).ingest(
            cinema, make_scraper(error=RuntimeError("HTTP 503"))
        )

        assert run.status == ScraperRunStatus.FAILED
        assert run.anomaly_type == AnomalyType.ERROR
        assert run.anomaly_details == {"error_message": "HTTP 503"}
        assert run.screening_count == 0
        assert run.completed_at is not None

    async def test_empty_scrape_is_zero_results(self, db_session, cinema) -> None:
        run = await IngestionPipeline(db_session).ingest(cinema, make_scraper([]))

        assert run.status == ScraperRunStatus.ANOMALY
        assert run.anomaly_type == AnomalyType.ZERO_RESULTS

    async def test_failed_write_is_isolated(self, db_session, cinema) -> None:
        pipeline = IngestionPipeline(db_session, film_resolver=FailingResolver(db_session, {"Aftersun"}))
        scraper = make_scraper(
            [make_screening("Nosferatu"), make_screening("Aftersun"), make_screening("Anora")]
        )

        run = await pipeline.ingest(cinema, scraper)

        assert run.status == ScraperRunStatus.PARTIAL
        assert run.screening_count == 2
        assert run.run_metadata["failed_writes"] == 1
        assert await screening_count(db_session) == 2

    async def test_all_writes_failing_is_a_failed_run(self, db_session, cinema) -> None:
        pipeline = IngestionPipeline(db_session, film_resolver=FailingResolver(db_session, {"Nosferatu"}))

        run = await pipeline.ingest(cinema, make_scraper([make_screening("Nosferatu")]))

        assert run.status == ScraperRunStatus.FAILED
        assert run.anomaly_type == AnomalyType.ERROR
        assert run.screening_count == 0

    async def test_vanished_screenings_are_kept(self, db_session, cinema) -> None:
        pipeline = IngestionPipeline(db_session)
        await pipeline.ingest(cinema, make_scraper([make_screening("Nosferatu"), make_screening("Anora")]))
        await pipeline.ingest(cinema, make_scraper([make_screening("Nosferatu")]))

        assert await screening_count(db_session) == 2

    async def test_scrape_diff_is_recorded(self, db_session, cinema) -> None:
        pipeline = IngestionPipeline(db_session)
        await pipeline.ingest(cinema, make_scraper([make_screening("Nosferatu"), make_screening("Anora")]))
        run = await pipeline.ingest(
            cinema, make_scraper([make_screening("Nosferatu"), make_screening("Aftersun", days_ahead=3)])
        )

        diff = run.run_metadata["scrape_diff"]
        assert diff["existing"] == 2
        assert diff["added"] == 1
        assert diff["removed"] == 1
        assert diff["unchanged"] == 1
        assert diff["blocked"] is False
        assert any(w.startswith("RECENTLY_ADDED_THEN_REMOVED: Anora") for w in diff["warnings"])

    async def test_broken_scrape_is_blocked_and_writes_nothing(self, db_session, cinema) -> None:
        pipeline = IngestionPipeline(db_session)
        await pipeline.ingest(cinema, make_scraper([make_screening("Nosferatu"), make_screening("Anora")]))

        # Only screenings beyond the comparison window come back
        far_off = [make_screening("Nosferatu", days_ahead=45), make_screening("Anora", days_ahead=46)]
        run = await pipeline.ingest(cinema, make_scraper(far_off))

        assert run.run_metadata["scrape_diff"]["blocked"] is True
        assert any(w.startswith("SCRAPER_BROKEN") for w in run.run_metadata["scrape_diff"]["warnings"])
        assert run.screening_count == 0
        assert run.status == ScraperRunStatus.ANOMALY
        assert run.anomaly_type == AnomalyType.ZERO_RESULTS
        assert await screening_count(db_session) == 2

    async def test_unknown_scraper_type_raises(self, db_session) -> None:
        cinema = make_cinema(id="nowhere", scraper_type="nonexistent")
        db_session.add(cinema)
        await db_session.commit()

        with pytest.raises(ScraperNotConfiguredError):
            await IngestionPipeline(db_session).ingest(cinema)

        runs = (await db_session.execute(select(func.count()).select_from(ScraperRun))).scalar_one()
        assert runs == 0

    async def test_start_times_are_stored_in_utc(self, db_session, cinema) -> None:
        screening = make_screening()
        await IngestionPipeline(db_session).ingest(cinema, make_scraper([screening]))

        stored = (await db_session.execute(select(Screening.start_time))).scalar_one()
        assert as_utc(stored) == screening.start_time


# ---------------------------------------------------------------------------
# ingest_chain
# ---------------------------------------------------------------------------


class TestIngestChain:
    async def test_one_run_per_venue(self, db_session) -> None:
        venues = [
            make_cinema(id="everyman-chelsea", chain="Everyman", scraper_type="everyman"),
            make_cinema(id="everyman-hampstead", chain="Everyman", scraper_type="everyman"),
        ]
        db_session.add_all(venues)
        await db_session.commit()

        chain_scraper = MagicMock()
        chain_scraper.scrape_venues = AsyncMock(
            return_value={
                "everyman-chelsea": [make_screening("Nosferatu"), make_screening("Anora")],
                "everyman-hampstead": [],
            }
        )

        runs = await IngestionPipeline(db_session).ingest_chain(venues, chain_scraper, triggered_by="test")

        chain_scraper.scrape_venues.assert_awaited_once_with(["everyman-chelsea", "everyman-hampstead"])
        by_cinema = {r.cinema_id: r for r in runs}
        assert by_cinema["everyman-chelsea"].status == ScraperRunStatus.SUCCESS
        assert by_cinema["everyman-chelsea"].screening_count == 2
        assert by_cinema["everyman-hampstead"].anomaly_type == AnomalyType.ZERO_RESULTS
        assert await screening_count(db_session, "everyman-chelsea") == 2

    async def test_chain_failure_fails_every_venue(self, db_session) -> None:
        venues = [make_cinema(id="everyman-chelsea", chain="Everyman", scraper_type="everyman")]
        db_session.add_all(venues)
        await db_session.commit()

        chain_scraper = MagicMock()
        chain_scraper.scrape_venues = AsyncMock(side_effect=RuntimeError("DNS failure"))

        runs = await IngestionPipeline(db_session).ingest_chain(venues, chain_scraper)

        assert [r.status for r in runs] == [ScraperRunStatus.FAILED]
        assert runs[0].anomaly_details["error_message"] == "DNS failure"

    async def test_no_venues(self, db_session) -> None:
        assert await IngestionPipeline(db_session).ingest_chain([]) == []
