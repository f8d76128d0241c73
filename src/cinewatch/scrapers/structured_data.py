"""Adapter for sites that embed Schema.org ``ScreeningEvent`` JSON-LD.

One page fetch, no DOM traversal: every ``application/ld+json`` block is
decoded, ``ScreeningEvent`` entries are kept and mapped field by field.
Blocks may hold a single object, a list, or an ``@graph`` wrapper.
"""

import json
import logging
import re
from datetime import datetime

from cinewatch.scrapers.base import BaseScraper
from cinewatch.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

_JSONLD_RE = re.compile(
    r'<script[^>]+type=["\']application/ld\+json["\'][^>]*>(.*?)</script>',
    re.DOTALL | re.IGNORECASE,
)
_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?")

SCREENING_EVENT = "ScreeningEvent"


def extract_json_ld(html: str) -> list[dict]:
    """Return every JSON-LD object in the page, flattening lists and @graph."""
    objects: list[dict] = []
    for block in _JSONLD_RE.findall(html):
        try:
            data = json.loads(block)
        except json.JSONDecodeError:
            continue

        stack = data if isinstance(data, list) else [data]
        for item in stack:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                objects.extend(g for g in graph if isinstance(g, dict))
            else:
                objects.append(item)
    return objects


def parse_duration_minutes(duration: str | None) -> int | None:
    """Parse an ISO-8601 duration such as ``PT133M`` or ``PT2H10M``."""
    if not duration:
        return None
    m = _DURATION_RE.fullmatch(duration.strip())
    if not m or not any(m.groups()):
        return None
    hours = int(m.group(1) or 0)
    minutes = int(m.group(2) or 0)
    return hours * 60 + minutes


class StructuredDataScraper(BaseScraper):
    """Generic JSON-LD adapter; subclasses set ``page_url`` and source-id rules."""

    page_url: str | None = None
    source_prefix: str = "jsonld"

    async def scrape(self) -> list[RawScreening]:
        url = self.page_url or self.config.base_url
        try:
            async with self.client() as client:
                response = await self.get(client, url)
                response.raise_for_status()
                screenings = self.parse_page(response.text)
        except Exception as e:
            logger.error(f"{self.cinema_id} scraper error: {e}", exc_info=True)
            return []

        logger.info(f"{self.cinema_id}: found {len(screenings)} screenings")
        return screenings

    def parse_page(self, html: str) -> list[RawScreening]:
        events = [
            obj for obj in extract_json_ld(html) if self._is_type(obj, SCREENING_EVENT)
        ]
        logger.debug(f"{self.cinema_id}: {len(events)} ScreeningEvent blocks")

        screenings: list[RawScreening] = []
        for event in events:
            screening = self.parse_event(event)
            if screening:
                screenings.append(screening)
        return screenings

    @staticmethod
    def _is_type(obj: dict, type_name: str) -> bool:
        type_value = obj.get("@type")
        if isinstance(type_value, list):
            return type_name in type_value
        return type_value == type_name

    def parse_event(self, event: dict) -> RawScreening | None:
        work = event.get("workPresented") or {}
        if isinstance(work, list):
            work = work[0] if work else {}
        raw_title = (work.get("name") or event.get("name") or "").strip()
        if not raw_title:
            return None

        start_str = event.get("startDate")
        start_time: datetime | str | None
        try:
            start_time = datetime.fromisoformat(start_str) if start_str else None
        except ValueError:
            # Leave unparsable values for the validator to reject
            start_time = start_str

        booking_url = event.get("url") or event.get("@id") or None
        minutes = parse_duration_minutes(event.get("duration"))

        return RawScreening(
            title=self.normalise_title(raw_title),
            start_time=start_time,
            booking_url=booking_url,
            event_description=f"Runtime: {minutes} mins" if minutes else None,
            source_id=self.source_id(event, booking_url),
        )

    def source_id(self, event: dict, booking_url: str | None) -> str | None:
        identifier = event.get("identifier")
        if identifier:
            return f"{self.source_prefix}-{identifier}"
        return None
