"""Data models for scrapers."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from cinewatch.config import settings

LOCAL_TZ = ZoneInfo(settings.local_timezone)


@dataclass
class RawScreening:
    """
    Raw screening data from a source adapter.

    This is the output format that all adapters must return. Nothing here is
    trusted yet: the validator decides whether the record is usable, and the
    film resolver turns the title into a canonical film.
    """

    title: str | None  # Film title as it appears on the cinema website
    start_time: datetime | str | None  # Timezone-aware datetime, or unparsed ISO string
    booking_url: str | None = None  # URL to book tickets
    screen_name: str | None = None  # Screen/auditorium name
    format_tags: str | None = None  # e.g. "35mm", "IMAX"
    event_type: str | None = None  # e.g. "q_and_a", "preview"
    event_description: str | None = None
    has_subtitles: bool = False
    has_audio_description: bool = False
    is_relaxed: bool = False
    source_id: str | None = None  # Source-native identifier, used for dedupe
    year: int | None = None

    def __post_init__(self) -> None:
        """Treat naive datetimes as local cinema time."""
        if isinstance(self.start_time, datetime) and self.start_time.tzinfo is None:
            self.start_time = self.start_time.replace(tzinfo=LOCAL_TZ)


@dataclass(frozen=True)
class Politeness:
    """
    Rate-limit settings an adapter applies to its own origin.

    ``requests_per_minute`` spaces individual requests; ``delay_seconds`` is
    the fixed pause a chain adapter takes between venues.
    """

    requests_per_minute: int = 30
    delay_seconds: float = 1.0

    @property
    def min_interval(self) -> float:
        if self.requests_per_minute <= 0:
            return 0.0
        return 60.0 / self.requests_per_minute

    async def pause(self) -> None:
        """Sleep the fixed between-venue delay."""
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


@dataclass
class ScraperConfig:
    """Declared configuration of a source adapter."""

    cinema_id: str
    base_url: str
    politeness: Politeness = field(default_factory=Politeness)


class RequestThrottle:
    """Spaces requests so an adapter never exceeds its requests-per-minute ceiling."""

    def __init__(self, politeness: Politeness) -> None:
        self.politeness = politeness
        self._last_request: float | None = None

    async def wait(self) -> None:
        interval = self.politeness.min_interval
        now = time.monotonic()
        if self._last_request is not None and interval > 0:
            remaining = interval - (now - self._last_request)
            if remaining > 0:
                await asyncio.sleep(remaining)
        self._last_request = time.monotonic()
