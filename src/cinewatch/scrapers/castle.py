"""The Castle Cinema (Homerton, Hackney) adapter.

The homepage embeds one Schema.org ``ScreeningEvent`` JSON-LD block per
performance, so a single fetch yields the whole programme.

Booking URL: https://thecastlecinema.com/bookings/{perfCode}/
"""

import re

from cinewatch.scrapers.models import Politeness, ScraperConfig
from cinewatch.scrapers.structured_data import StructuredDataScraper

BASE_URL = "https://thecastlecinema.com"

CASTLE_CONFIG = ScraperConfig(
    cinema_id="castle-cinema",
    base_url=BASE_URL,
    politeness=Politeness(requests_per_minute=30, delay_seconds=0.5),
)

_BOOKING_ID_RE = re.compile(r"/bookings/(\d+)/?")


class CastleScraper(StructuredDataScraper):
    """Adapter for The Castle Cinema, Homerton."""

    source_prefix = "castle"

    def __init__(self, config: ScraperConfig | None = None) -> None:
        super().__init__(config or CASTLE_CONFIG)

    def source_id(self, event: dict, booking_url: str | None) -> str | None:
        if booking_url:
            m = _BOOKING_ID_RE.search(booking_url)
            if m:
                return f"castle-{m.group(1)}"
        return super().source_id(event, booking_url)
