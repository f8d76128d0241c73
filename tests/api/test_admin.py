"""Tests for the admin scrape API endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from cinewatch.models import AnomalyType, Cinema, ScraperRun, ScraperRunStatus
from cinewatch.scrapers import EverymanScraper
from cinewatch.scrapers.models import Politeness
from cinewatch.services.ingestion import ScraperNotConfiguredError

SCRAPE_PAYLOAD = {"cinema_ids": ["castle-cinema"]}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_cinema(id: str = "castle-cinema", name: str = "The Castle Cinema", scraper_type: str = "castle") -> Cinema:
    return Cinema(id=id, name=name, scraper_type=scraper_type, website="https://thecastlecinema.com")


def make_run(
    id: int = 1,
    cinema_id: str = "castle-cinema",
    status: ScraperRunStatus = ScraperRunStatus.SUCCESS,
    screening_count: int = 42,
    anomaly_type: AnomalyType | None = None,
    anomaly_details: dict | None = None,
) -> ScraperRun:
    now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
    return ScraperRun(
        id=id,
        cinema_id=cinema_id,
        triggered_by="manual",
        started_at=now,
        completed_at=now,
        status=status,
        screening_count=screening_count,
        anomaly_type=anomaly_type,
        anomaly_details=anomaly_details,
    )


def mock_pipeline(*, runs: list[ScraperRun] | None = None, error: Exception | None = None) -> MagicMock:
    pipeline = MagicMock()
    pipeline.ingest = AsyncMock(side_effect=error) if error else AsyncMock(side_effect=runs)
    pipeline.ingest_chain = AsyncMock(return_value=[])
    return pipeline


def everyman(venue: str) -> Cinema:
    id = f"everyman-{venue}"
    return Cinema(
        id=id,
        name=f"Everyman {venue.title()}",
        chain="Everyman",
        scraper_type="everyman",
        scraper_config={"venue_id": id},
    )


def mock_http_client() -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


@pytest.fixture
async def seeded(db_session):
    db_session.add_all([make_cinema(), make_cinema(id="rio-dalston", name="Rio Cinema", scraper_type="rio")])
    await db_session.commit()
    return db_session


async def post(app: FastAPI, url: str, json: dict | None = None):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        return await client.post(url, json=json)


# ---------------------------------------------------------------------------
# POST /api/admin/scrape
# ---------------------------------------------------------------------------


class TestTriggerScrape:
    async def test_unknown_cinemas_return_404(self, db_app: FastAPI, seeded) -> None:
        response = await post(db_app, "/api/admin/scrape", {"cinema_ids": ["nowhere"]})

        assert response.status_code == 404
        assert response.json()["detail"] == "No cinemas found with provided IDs"

    async def test_successful_run(self, db_app: FastAPI, seeded) -> None:
        pipeline = mock_pipeline(runs=[make_run()])

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=pipeline):
            response = await post(db_app, "/api/admin/scrape", SCRAPE_PAYLOAD)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["total_screenings"] == 42
        assert data["results"] == [
            {
                "cinema_id": "castle-cinema",
                "cinema_name": "The Castle Cinema",
                "success": True,
                "run_id": 1,
                "status": "success",
                "screening_count": 42,
                "anomaly_type": None,
                "error": None,
            }
        ]
        assert pipeline.ingest.await_args.kwargs == {"triggered_by": "manual"}

    async def test_anomaly_run_is_still_a_success(self, db_app: FastAPI, seeded) -> None:
        run = make_run(status=ScraperRunStatus.ANOMALY, screening_count=0, anomaly_type=AnomalyType.ZERO_RESULTS)

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=mock_pipeline(runs=[run])):
            response = await post(db_app, "/api/admin/scrape", SCRAPE_PAYLOAD)

        result = response.json()["results"][0]
        assert result["success"] is True
        assert result["status"] == "anomaly"
        assert result["anomaly_type"] == "zero_results"

    async def test_failed_run_reports_error_message(self, db_app: FastAPI, seeded) -> None:
        run = make_run(
            status=ScraperRunStatus.FAILED,
            screening_count=0,
            anomaly_type=AnomalyType.ERROR,
            anomaly_details={"error_message": "HTTP 503"},
        )

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=mock_pipeline(runs=[run])):
            response = await post(db_app, "/api/admin/scrape", SCRAPE_PAYLOAD)

        result = response.json()["results"][0]
        assert result["success"] is False
        assert result["error"] == "HTTP 503"
        assert result["run_id"] == 1

    async def test_unconfigured_scraper_is_reported(self, db_app: FastAPI, seeded) -> None:
        error = ScraperNotConfiguredError("No adapter for scraper type 'castle'")

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=mock_pipeline(error=error)):
            response = await post(db_app, "/api/admin/scrape", SCRAPE_PAYLOAD)

        assert response.status_code == 200
        result = response.json()["results"][0]
        assert result["success"] is False
        assert result["run_id"] is None
        assert "castle" in result["error"]

    async def test_one_failing_cinema_does_not_stop_the_others(self, db_app: FastAPI, seeded) -> None:
        pipeline = MagicMock()
        pipeline.ingest = AsyncMock(
            side_effect=[RuntimeError("database went away"), make_run(id=2, cinema_id="rio-dalston", screening_count=7)]
        )

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=pipeline):
            response = await post(
                db_app, "/api/admin/scrape", {"cinema_ids": ["castle-cinema", "rio-dalston"]}
            )

        data = response.json()
        assert response.status_code == 200
        assert [r["success"] for r in data["results"]] == [False, True]
        assert data["results"][0]["error"] == "database went away"
        assert data["total_screenings"] == 7

    async def test_chain_venues_are_ingested_together(self, db_app: FastAPI, seeded) -> None:
        seeded.add_all([everyman("chelsea"), everyman("hampstead")])
        await seeded.commit()
        pipeline = mock_pipeline(runs=[make_run()])
        pipeline.ingest_chain = AsyncMock(
            return_value=[
                make_run(id=2, cinema_id="everyman-chelsea", screening_count=30),
                make_run(id=3, cinema_id="everyman-hampstead", screening_count=20),
            ]
        )

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=pipeline):
            response = await post(
                db_app,
                "/api/admin/scrape",
                {"cinema_ids": ["castle-cinema", "everyman-chelsea", "everyman-hampstead"]},
            )

        data = response.json()
        venues = pipeline.ingest_chain.await_args.args[0]
        assert [v.id for v in venues] == ["everyman-chelsea", "everyman-hampstead"]
        assert pipeline.ingest_chain.await_count == 1
        assert [c.args[0].id for c in pipeline.ingest.await_args_list] == ["castle-cinema"]
        assert [r["cinema_id"] for r in data["results"]] == [
            "castle-cinema",
            "everyman-chelsea",
            "everyman-hampstead",
        ]
        assert data["results"][1]["cinema_name"] == "Everyman Chelsea"
        assert data["total_screenings"] == 92

    async def test_failing_chain_reports_every_venue(self, db_app: FastAPI, seeded) -> None:
        seeded.add_all([everyman("chelsea"), everyman("hampstead")])
        await seeded.commit()
        pipeline = mock_pipeline()
        pipeline.ingest_chain = AsyncMock(side_effect=RuntimeError("database went away"))

        with patch("cinewatch.api.routes.admin.IngestionPipeline", return_value=pipeline):
            response = await post(
                db_app, "/api/admin/scrape", {"cinema_ids": ["everyman-chelsea", "everyman-hampstead"]}
            )

        results = response.json()["results"]
        assert [r["success"] for r in results] == [False, False]
        assert {r["error"] for r in results} == {"database went away"}

    async def test_chain_venues_pause_between_each_other(self, db_app: FastAPI, seeded) -> None:
        seeded.add_all([everyman("barnet"), everyman("chelsea"), everyman("hampstead")])
        await seeded.commit()
        scrape_venue = AsyncMock(return_value=[])
        pause = AsyncMock()

        with (
            patch("httpx.AsyncClient", return_value=mock_http_client()),
            patch.object(EverymanScraper, "scrape_venue", new=scrape_venue),
            patch.object(Politeness, "pause", new=pause),
        ):
            response = await post(
                db_app,
                "/api/admin/scrape",
                {"cinema_ids": ["everyman-barnet", "everyman-chelsea", "everyman-hampstead"]},
            )

        assert response.status_code == 200
        assert [c.args[1] for c in scrape_venue.await_args_list] == [
            "everyman-barnet",
            "everyman-chelsea",
            "everyman-hampstead",
        ]
        assert pause.await_count == 2
        runs = (await seeded.execute(select(ScraperRun).order_by(ScraperRun.cinema_id))).scalars().all()
        assert [r.cinema_id for r in runs] == ["everyman-barnet", "everyman-chelsea", "everyman-hampstead"]
        assert {r.anomaly_type for r in runs} == {AnomalyType.ZERO_RESULTS}

    async def test_missing_body_is_rejected(self, db_app: FastAPI) -> None:
        response = await post(db_app, "/api/admin/scrape", {})

        assert response.status_code == 422


# ---------------------------------------------------------------------------
# POST /api/admin/scrape-all
# ---------------------------------------------------------------------------


class TestTriggerScrapeAll:
    async def test_starts_background_scrape(self, test_app: FastAPI) -> None:
        run_scrape_all = AsyncMock(return_value=[])

        with patch("cinewatch.api.routes.admin.run_scrape_all", run_scrape_all):
            response = await post(test_app, "/api/admin/scrape-all")

        assert response.status_code == 200
        assert response.json() == {"status": "started"}
        run_scrape_all.assert_awaited_once_with("manual")
