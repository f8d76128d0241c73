"""Unit tests for the JSON-LD adapters (generic and The Castle Cinema)."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cinewatch.scrapers.castle import CastleScraper
from cinewatch.scrapers.models import Politeness, ScraperConfig
from cinewatch.scrapers.structured_data import (
    StructuredDataScraper,
    extract_json_ld,
    parse_duration_minutes,
)


def ld(data: object) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


def screening_event(
    name: str = "Nosferatu",
    start: str = "2026-03-05T19:30:00+00:00",
    url: str = "https://thecastlecinema.com/bookings/4321/",
    **extra: object,
) -> dict:
    return {
        "@context": "https://schema.org",
        "@type": "ScreeningEvent",
        "name": f"{name} at The Castle",
        "workPresented": {"@type": "Movie", "name": name},
        "startDate": start,
        "url": url,
        **extra,
    }


PAGE = "\n".join(
    [
        "<html><head>",
        ld({"@type": "MovieTheater", "name": "The Castle Cinema"}),
        ld(screening_event()),
        ld([screening_event("Anora", url="https://thecastlecinema.com/bookings/4322/", duration="PT2H19M")]),
        ld({"@graph": [screening_event("Preview: Aftersun (2022)", url="https://thecastlecinema.com/bookings/4323/")]}),
        '<script type="application/ld+json">{not json</script>',
        "</head></html>",
    ]
)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestExtractJsonLd:
    def test_flattens_lists_and_graphs(self) -> None:
        objects = extract_json_ld(PAGE)
        types = [o.get("@type") for o in objects]
        assert types == ["MovieTheater", "ScreeningEvent", "ScreeningEvent", "ScreeningEvent"]

    def test_no_blocks(self) -> None:
        assert extract_json_ld("<html></html>") == []


class TestParseDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("PT133M", 133), ("PT2H10M", 130), ("PT2H", 120), ("", None), (None, None), ("2 hours", None)],
    )
    def test_parse_duration_minutes(self, value: str | None, expected: int | None) -> None:
        assert parse_duration_minutes(value) == expected


# ---------------------------------------------------------------------------
# CastleScraper.parse_page
# ---------------------------------------------------------------------------


class TestCastleParsePage:
    def setup_method(self) -> None:
        self.scraper = CastleScraper()

    def test_extracts_screening_events_only(self) -> None:
        screenings = self.scraper.parse_page(PAGE)
        assert [s.title for s in screenings] == ["Nosferatu", "Anora", "Aftersun"]

    def test_maps_fields(self) -> None:
        nosferatu = self.scraper.parse_page(PAGE)[0]
        assert nosferatu.start_time == datetime(2026, 3, 5, 19, 30, tzinfo=timezone.utc)
        assert nosferatu.booking_url == "https://thecastlecinema.com/bookings/4321/"
        assert nosferatu.source_id == "castle-4321"

    def test_runtime_goes_into_description(self) -> None:
        anora = self.scraper.parse_page(PAGE)[1]
        assert anora.event_description == "Runtime: 139 mins"

    def test_unparsable_start_is_left_for_the_validator(self) -> None:
        page = ld(screening_event(start="Thursday evening"))
        assert self.scraper.parse_page(page)[0].start_time == "Thursday evening"

    def test_event_without_title_is_skipped(self) -> None:
        page = ld({"@type": "ScreeningEvent", "startDate": "2026-03-05T19:30:00+00:00"})
        assert self.scraper.parse_page(page) == []

    def test_source_id_falls_back_to_identifier(self) -> None:
        page = ld(screening_event(url="https://tickets.example.com/x", identifier="abc"))
        assert self.scraper.parse_page(page)[0].source_id == "castle-abc"


# ---------------------------------------------------------------------------
# Generic adapter
# ---------------------------------------------------------------------------


class TestStructuredDataScraper:
    async def test_fetches_configured_url(self) -> None:
        config = ScraperConfig(
            cinema_id="some-cinema",
            base_url="https://some-cinema.example/whats-on",
            politeness=Politeness(requests_per_minute=0, delay_seconds=0),
        )
        scraper = StructuredDataScraper(config)

        mock_response = MagicMock()
        mock_response.text = PAGE
        mock_response.raise_for_status = MagicMock()
        mock_client = AsyncMock()
        mock_client.get = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)

        with patch("httpx.AsyncClient", return_value=mock_client):
            screenings = await scraper.scrape()

        mock_client.get.assert_awaited_once_with("https://some-cinema.example/whats-on")
        assert len(screenings) == 3
        assert screenings[0].source_id is None
