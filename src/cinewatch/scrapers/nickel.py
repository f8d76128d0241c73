"""The Nickel Cinema adapter using BeautifulSoup HTML parsing."""

import logging
import re
from datetime import date, datetime

from bs4 import BeautifulSoup, Tag

from cinewatch.scrapers.base import BaseScraper
from cinewatch.scrapers.models import LOCAL_TZ, Politeness, RawScreening, ScraperConfig

logger = logging.getLogger(__name__)

BASE_URL = "https://thenickel.co.uk"

NICKEL_CONFIG = ScraperConfig(
    cinema_id="the-nickel",
    base_url=BASE_URL,
    politeness=Politeness(requests_per_minute=20, delay_seconds=1.0),
)

_SCREENING_HREF_RE = re.compile(r"^/screening/(\d+)")
_FORMATS = ("digital", "vhs", "35mm", "16mm")


class NickelScraper(BaseScraper):
    """
    Adapter for The Nickel Cinema (Clerkenwell).

    The homepage lists every upcoming screening as a card,
    an <a href="/screening/[id]"> holding the date ("Sunday 22.2"),
    doors time, film start time and format as plain paragraphs.
    """

    def __init__(self, config: ScraperConfig | None = None) -> None:
        super().__init__(config or NICKEL_CONFIG)

    async def scrape(self) -> list[RawScreening]:
        try:
            async with self.client() as client:
                response = await self.get(client, self.config.base_url)
                response.raise_for_status()
                screenings = self.parse_html(response.text, datetime.now(LOCAL_TZ).date())
        except Exception as e:
            logger.error(f"The Nickel scraper error: {e}", exc_info=True)
            return []

        logger.info(f"The Nickel: found {len(screenings)} screenings")
        return screenings

    def parse_html(self, html: str, today: date) -> list[RawScreening]:
        """Parse screening cards from the homepage HTML."""
        soup = BeautifulSoup(html, "html.parser")
        screenings: list[RawScreening] = []
        for card in soup.find_all("a", href=_SCREENING_HREF_RE):
            if not isinstance(card, Tag):
                continue
            try:
                screening = self._parse_card(card, today)
                if screening:
                    screenings.append(screening)
            except Exception as e:
                logger.warning(f"The Nickel: failed to parse card: {e}")
        return screenings

    @staticmethod
    def _get_text(tag: Tag) -> str:
        return re.sub(r"\s+", " ", tag.get_text(separator=" ")).strip()

    def _parse_card(self, card: Tag, today: date) -> RawScreening | None:
        href = str(card.get("href", ""))
        booking_url = f"{BASE_URL}{href}" if href.startswith("/") else href
        id_match = _SCREENING_HREF_RE.match(href)

        # Title is the only uppercased paragraph
        title_tag = card.find("p", class_=lambda c: c and "uppercase" in c.split())
        if not title_tag:
            return None
        title = self.normalise_title(self._get_text(title_tag))
        if not title:
            return None

        # Date: the leaf <div> containing "DD.MM"
        date_div: Tag | None = None
        for d in card.find_all("div"):
            if d.find("div"):
                continue
            if re.search(r"\d{1,2}\.\d{1,2}", self._get_text(d)):
                date_div = d
                break
        if date_div is None:
            return None

        screening_date = self.parse_date(self._get_text(date_div), today)
        if screening_date is None:
            return None

        # Film time and format follow the date div
        film_time: str | None = None
        format_tag: str | None = None
        for sib in date_div.next_siblings:
            if not isinstance(sib, Tag):
                continue
            text = self._get_text(sib)
            if text.lower().startswith("film "):
                film_time = text[5:].strip()
            elif text.lower() in _FORMATS:
                format_tag = text

        time_parts = self.parse_time(film_time) if film_time else None
        if not time_parts:
            return None

        hour, minute = time_parts
        return RawScreening(
            title=title,
            start_time=datetime(
                screening_date.year, screening_date.month, screening_date.day,
                hour, minute, tzinfo=LOCAL_TZ,
            ),
            booking_url=booking_url,
            format_tags=format_tag,
            source_id=f"nickel-{id_match.group(1)}" if id_match else None,
        )

    @staticmethod
    def parse_date(text: str, today: date) -> date | None:
        """
        Parse "Tuesday 17.2" into a date.

        The year is inferred from ``today``, rolling forward when the result
        would be more than 30 days in the past (December → January).
        """
        m = re.search(r"(\d{1,2})\.(\d{1,2})", text)
        if not m:
            return None
        day, month = int(m.group(1)), int(m.group(2))
        try:
            candidate = date(today.year, month, day)
            if (candidate - today).days < -30:
                candidate = date(today.year + 1, month, day)
        except ValueError:
            return None
        return candidate

    @staticmethod
    def parse_time(text: str) -> tuple[int, int] | None:
        """
        Parse "6:30pm", "8pm", "20:45pm" or bare "9:15" into (hour, minute).

        A bare time without am/pm below 12 is taken as evening.
        """
        text = text.strip()
        m = re.match(r"(\d{1,2})[.:](\d{2})\s*(am|pm)?", text, re.IGNORECASE)
        if m:
            hour, minute = int(m.group(1)), int(m.group(2))
            period = m.group(3).lower() if m.group(3) else None
        else:
            m = re.match(r"(\d{1,2})\s*(am|pm)", text, re.IGNORECASE)
            if not m:
                return None
            hour, minute = int(m.group(1)), 0
            period = m.group(2).lower()

        if period == "pm" and hour < 12:
            hour += 12
        elif period == "am" and hour == 12:
            hour = 0
        elif period is None and hour < 12:
            hour += 12

        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            return None
        return hour, minute
