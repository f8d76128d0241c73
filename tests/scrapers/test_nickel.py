"""Unit tests for The Nickel Cinema scraper."""

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cinewatch.scrapers.models import LOCAL_TZ
from cinewatch.scrapers.nickel import NickelScraper

TODAY = date(2026, 2, 17)


def card(screening_id: int, title: str, day: str, film: str, fmt: str = "Digital") -> str:
    return f"""
    <a href="/screening/{screening_id}">
      <div>
        <div>{day}</div>
        <p>Doors 7pm</p>
        <p>Film {film}</p>
        <p>{fmt}</p>
      </div>
      <p class="text-lg uppercase">{title}</p>
    </a>
    """


HOMEPAGE = f"""
<html><body>
  <nav><a href="/about">About</a></nav>
  {card(101, "THE PARALLAX VIEW", "Sunday 22.2", "7:30pm", "35mm")}
  {card(102, "POINT BLANK", "Tuesday 24.2", "8pm")}
  {card(103, "BLOOD SIMPLE", "Sunday 22.2", "9:15")}
  <a href="/screening/104"><div><div>Monday 23.2</div></div></a>
</body></html>
"""


@pytest.fixture
def scraper() -> NickelScraper:
    return NickelScraper()


# ---------------------------------------------------------------------------
# parse_html: pure parsing, no HTTP
# ---------------------------------------------------------------------------


class TestNickelParseHtml:
    def test_extracts_every_complete_card(self, scraper: NickelScraper) -> None:
        screenings = scraper.parse_html(HOMEPAGE, TODAY)
        assert [s.title for s in screenings] == ["THE PARALLAX VIEW", "POINT BLANK", "BLOOD SIMPLE"]

    def test_returns_empty_list_for_no_screening_cards(self, scraper: NickelScraper) -> None:
        assert scraper.parse_html("<html><body><p>No screenings</p></body></html>", TODAY) == []

    def test_builds_booking_url_and_source_id(self, scraper: NickelScraper) -> None:
        first = scraper.parse_html(HOMEPAGE, TODAY)[0]
        assert first.booking_url == "https://thenickel.co.uk/screening/101"
        assert first.source_id == "nickel-101"

    def test_start_time_and_format(self, scraper: NickelScraper) -> None:
        first, second, third = scraper.parse_html(HOMEPAGE, TODAY)
        assert first.start_time == datetime(2026, 2, 22, 19, 30, tzinfo=LOCAL_TZ)
        assert first.format_tags == "35mm"
        assert second.start_time == datetime(2026, 2, 24, 20, 0, tzinfo=LOCAL_TZ)
        # Bare times are evening screenings
        assert third.start_time == datetime(2026, 2, 22, 21, 15, tzinfo=LOCAL_TZ)


# ---------------------------------------------------------------------------
# parse_date / parse_time: pure helpers
# ---------------------------------------------------------------------------


class TestNickelParseDate:
    def test_current_year(self) -> None:
        assert NickelScraper.parse_date("Sunday 22.2", TODAY) == date(2026, 2, 22)

    def test_rolls_into_next_year(self) -> None:
        assert NickelScraper.parse_date("Friday 2.1", date(2026, 12, 20)) == date(2027, 1, 2)

    def test_recent_past_stays_in_current_year(self) -> None:
        assert NickelScraper.parse_date("Sunday 15.2", TODAY) == date(2026, 2, 15)

    def test_invalid(self) -> None:
        assert NickelScraper.parse_date("Someday", TODAY) is None
        assert NickelScraper.parse_date("Monday 31.2", TODAY) is None


class TestNickelParseTime:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("6:30pm", (18, 30)),
            ("8pm", (20, 0)),
            ("9:15", (21, 15)),
            ("11am", (11, 0)),
            ("12am", (0, 0)),
            ("20:45pm", (20, 45)),
            ("noon", None),
        ],
    )
    def test_parse_time(self, text: str, expected: tuple[int, int] | None) -> None:
        assert NickelScraper.parse_time(text) == expected


# ---------------------------------------------------------------------------
# scrape: mocked HTTP
# ---------------------------------------------------------------------------


class TestNickelScrape:
    async def test_returns_empty_list_on_http_error(self) -> None:
        mock_response = MagicMock()
        mock_response.raise_for_status = MagicMock(side_effect=Exception("HTTP 500"))

        mock_client = AsyncMock()
        mock_client.get = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)

        with patch("httpx.AsyncClient", return_value=mock_client):
            assert await NickelScraper().scrape() == []
