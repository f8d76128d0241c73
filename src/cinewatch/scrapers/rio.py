"""Rio Cinema adapter using the JSON embedded in the What's On page."""

import json
import logging
import re
from datetime import date, datetime

from cinewatch.scrapers.base import BaseScraper
from cinewatch.scrapers.models import LOCAL_TZ, Politeness, RawScreening, ScraperConfig

logger = logging.getLogger(__name__)

BASE_URL = "https://riocinema.org.uk"
WHATS_ON_URL = f"{BASE_URL}/Rio.dll/WhatsOn"

RIO_CONFIG = ScraperConfig(
    cinema_id="rio-dalston",
    base_url=BASE_URL,
    politeness=Politeness(requests_per_minute=30, delay_seconds=1.0),
)

# Performance flag → human-readable label
_PERF_FLAGS: dict[str, str] = {
    "CB": "Carers & Babies",
    "HoH": "Hard of Hearing",
    "PP": "Pink Palace",
    "SP": "Special",
    "CM": "Classic Matinee",
    "QA": "Q&A",
    "FF": "Family Flicks",
    "RS": "Relaxed Screening",
    "NoAds": "No Ads",
}

# Flags that classify the screening as an event
_EVENT_FLAGS: dict[str, str] = {
    "QA": "q_and_a",
    "SP": "special_event",
    "CB": "parent_and_baby",
}


class RioScraper(BaseScraper):
    """
    Adapter for Rio Cinema (Dalston).

    The What's On page embeds all film/performance data as a JavaScript
    ``var Events = {...}`` assignment, so a regex plus a JSON decode is enough.
    """

    def __init__(self, config: ScraperConfig | None = None) -> None:
        super().__init__(config or RIO_CONFIG)

    async def scrape(self) -> list[RawScreening]:
        try:
            async with self.client() as client:
                response = await self.get(client, WHATS_ON_URL)
                response.raise_for_status()
                screenings = self.parse_html(response.text)
        except Exception as e:
            logger.error(f"Rio Cinema scraper error: {e}", exc_info=True)
            return []

        logger.info(f"Rio Cinema: found {len(screenings)} screenings")
        return screenings

    def parse_html(self, html: str) -> list[RawScreening]:
        """Extract the embedded Events JSON and parse it into RawScreenings."""
        marker = re.search(r"var\s+Events\s*=\s*", html)
        if not marker:
            logger.warning("Rio Cinema: could not find 'var Events' in page HTML")
            return []

        try:
            # raw_decode stops at the end of the first JSON value
            events_data, _ = json.JSONDecoder().raw_decode(html, marker.end())
        except json.JSONDecodeError as e:
            logger.error(f"Rio Cinema: failed to parse Events JSON: {e}")
            return []

        screenings: list[RawScreening] = []
        for film in events_data.get("Events", []):
            try:
                screenings.extend(self.parse_film(film))
            except Exception as e:
                logger.warning(f"Rio Cinema: failed to parse film entry: {e}")
        return screenings

    def parse_film(self, film: dict) -> list[RawScreening]:
        title_raw = film.get("Title")
        if not title_raw:
            return []
        title = self.normalise_title(str(title_raw))
        year = film.get("Year")

        screenings: list[RawScreening] = []
        for perf in film.get("Performances", []):
            screening = self.parse_performance(title, perf, film.get("ID"))
            if screening:
                if year and str(year).isdigit():
                    screening.year = int(year)
                screenings.append(screening)
        return screenings

    def parse_performance(self, title: str, perf: dict, event_id: object = None) -> RawScreening | None:
        start_date = perf.get("StartDate", "")  # "2026-02-16"
        start_hhmm = perf.get("StartTime", "")  # "1100" (= 11:00)
        if not start_date or not start_hhmm:
            return None

        try:
            perf_date = date.fromisoformat(start_date)
            time_str = str(start_hhmm).zfill(4)
            start_time = datetime(
                perf_date.year, perf_date.month, perf_date.day,
                int(time_str[:2]), int(time_str[2:]),
                tzinfo=LOCAL_TZ,
            )
        except ValueError:
            return None

        perf_url = perf.get("URL", "")
        booking_url: str | None = None
        if perf_url:
            booking_url = perf_url if perf_url.startswith("http") else f"{BASE_URL}/Rio.dll/{perf_url}"

        flags = [flag for flag in _PERF_FLAGS if perf.get(flag) == "Y"]
        event_type = next((_EVENT_FLAGS[f] for f in flags if f in _EVENT_FLAGS), None)
        screen_name = perf.get("AuditoriumName") or None

        return RawScreening(
            title=title,
            start_time=start_time,
            booking_url=booking_url,
            screen_name=str(screen_name) if screen_name else None,
            format_tags=", ".join(_PERF_FLAGS[f] for f in flags) or None,
            event_type=event_type,
            has_subtitles="HoH" in flags,
            is_relaxed="RS" in flags,
            source_id=f"rio-dalston-{event_id}-{start_time.isoformat()}" if event_id else None,
        )
