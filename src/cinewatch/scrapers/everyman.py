"""Everyman Cinemas chain adapter using their internal Gatsby/Boxoffice API.

Everyman uses a Movio Boxoffice (Vista Group) ticketing system. The frontend
calls unauthenticated API routes that return schedule and movie data.

Per venue (three-step fetch):
  1. GET /scheduledMovies?theaterId=…: ids of every film on the schedule.
  2. GET /movies?ids=…&ids=…: titles for ids not already in the cache.
  3. GET /schedule?theaters=…&from=…&to=…: sessions for the date window,
     nested movie id → date → sessions.

Booking URLs come from the DESKTOP "default" provider in each session's
ticketing list: https://purchase.everymancinema.com/launch/ticketing/{uuid}
"""

import json
import logging
import re
from datetime import datetime, timedelta

import httpx

from cinewatch.config import settings
from cinewatch.scrapers.base import ChainScraper
from cinewatch.scrapers.models import LOCAL_TZ, Politeness, RawScreening, ScraperConfig

logger = logging.getLogger(__name__)

BASE_URL = "https://www.everymancinema.com"
_API_BASE = f"{BASE_URL}/api/gatsby-source-boxofficeapi"
_SCHEDULED_MOVIES_URL = f"{_API_BASE}/scheduledMovies"
_SCHEDULE_URL = f"{_API_BASE}/schedule"
_MOVIES_URL = f"{_API_BASE}/movies"

EVERYMAN_CONFIG = ScraperConfig(
    cinema_id="everyman",
    base_url=BASE_URL,
    politeness=Politeness(requests_per_minute=10, delay_seconds=3.0),
)

# Cinema id → Boxoffice theater id
THEATER_IDS: dict[str, str] = {
    "everyman-baker-street": "X0712",
    "everyman-barnet": "X06SI",
    "everyman-belsize-park": "X077P",
    "everyman-borough-yards": "G011I",
    "everyman-broadgate": "X11NT",
    "everyman-canary-wharf": "X0VPB",
    "everyman-chelsea": "X078X",
    "everyman-crystal-palace": "X11DR",
    "everyman-hampstead": "X06ZW",
    "everyman-kings-cross": "X0X5P",
    "everyman-maida-vale": "X0LWI",
    "everyman-muswell-hill": "X06SN",
    "everyman-screen-on-the-green": "X077O",
    "everyman-stratford-international": "G029X",
    "everyman-walthamstow": "X0WT1",
}

INACTIVE_VENUES = {"everyman-walthamstow"}

HEALTH_CHECK_THEATER = "X0712"

# Strips surrounding straight or curly quotation marks from titles
_OUTER_QUOTES_RE = re.compile(r'^["“‘](.+)["”’]$')

# Session tag suffix → format tag label.
# Tags follow "Category.Subcategory.Value" convention; we match on the suffix.
_SESSION_TAG_MAP: dict[str, str] = {
    "Accessibility.AudioDescribed": "AD",
    "Accessibility.BSLInterpreted": "BSL",
    "Accessibility.Subtitled": "Subtitled",
    "Accessibility.Relaxed": "Relaxed",
    "Projection.Film": "35mm",
    "Projection.IMAX": "IMAX",
    "Projection.4DX": "4DX",
    "Projection.ScreenX": "ScreenX",
}


def active_venue_ids() -> list[str]:
    return [venue for venue in THEATER_IDS if venue not in INACTIVE_VENUES]


def _tag_labels(tags: list[str]) -> list[str]:
    labels = []
    for tag in tags:
        for suffix, label in _SESSION_TAG_MAP.items():
            if tag.endswith(suffix):
                labels.append(label)
                break
    return labels


def _booking_url(session: dict) -> str | None:
    ticketing = (session.get("data") or {}).get("ticketing") or []
    for entry in ticketing:
        if entry.get("type") == "DESKTOP" and entry.get("provider") == "default":
            urls = entry.get("urls") or []
            if urls:
                return urls[0]
    return None


class EverymanScraper(ChainScraper):
    """Chain adapter for Everyman Cinemas London venues."""

    chain_name = "Everyman"

    def __init__(
        self,
        venue_ids: list[str] | None = None,
        config: ScraperConfig | None = None,
        days_ahead: int | None = None,
    ) -> None:
        super().__init__(config or EVERYMAN_CONFIG, venue_ids or active_venue_ids())
        self.days_ahead = days_ahead if days_ahead is not None else settings.scrape_days_ahead
        # Movie id → movie info, lives as long as this adapter instance
        self.movie_cache: dict[str, dict] = {}

    async def scrape_venue(self, client: httpx.AsyncClient, venue_id: str) -> list[RawScreening]:
        theater_id = THEATER_IDS.get(venue_id)
        if not theater_id:
            logger.warning(f"Everyman: no theater id for venue {venue_id}")
            return []

        # Step 1: which movies are scheduled here
        resp = await self.get(client, _SCHEDULED_MOVIES_URL, params={"theaterId": theater_id})
        resp.raise_for_status()
        movie_ids: list[str] = ((resp.json() or {}).get("movieIds") or {}).get("titleAsc") or []
        if not movie_ids:
            logger.debug(f"Everyman ({venue_id}): no scheduled movies")
            return []

        # Step 2: titles for movies we haven't seen yet
        await self._fetch_movies(client, movie_ids)

        # Step 3: sessions for the bounded window
        now = datetime.now(LOCAL_TZ)
        date_to = (now + timedelta(days=self.days_ahead)).date()
        theater_json = json.dumps(
            {"id": theater_id, "timeZone": "Europe/London"},
            separators=(",", ":"),
        )
        resp = await self.get(
            client,
            _SCHEDULE_URL,
            params=[
                ("from", now.strftime("%Y-%m-%dT%H:%M:%S")),
                ("to", f"{date_to.isoformat()}T23:59:59"),
                ("theaters", theater_json),
            ],
        )
        resp.raise_for_status()
        schedule = ((resp.json() or {}).get(theater_id) or {}).get("schedule") or {}

        return self.flatten_schedule(venue_id, schedule, now)

    async def _fetch_movies(self, client: httpx.AsyncClient, movie_ids: list[str]) -> None:
        uncached = [mid for mid in movie_ids if mid not in self.movie_cache]
        if not uncached:
            return

        params = [("basic", "false"), ("castingLimit", "0")] + [("ids", mid) for mid in uncached]
        try:
            resp = await self.get(client, _MOVIES_URL, params=params)
            resp.raise_for_status()
            for movie in resp.json() or []:
                if movie.get("id"):
                    self.movie_cache[movie["id"]] = movie
        except Exception as e:
            # Titles fall back to the movie id; the schedule is still usable
            logger.warning(f"Everyman: error fetching movie details: {e}")

    def flatten_schedule(
        self,
        venue_id: str,
        schedule: dict[str, dict[str, list[dict]]],
        now: datetime,
    ) -> list[RawScreening]:
        """Flatten movie → date → sessions into RawScreenings, dropping expired and past ones."""
        screenings: list[RawScreening] = []
        for movie_id, dates in schedule.items():
            title = self._title_for(movie_id)
            for sessions in dates.values():
                for session in sessions:
                    screening = self._parse_session(venue_id, title, session, now)
                    if screening:
                        screenings.append(screening)
        return screenings

    def _title_for(self, movie_id: str) -> str:
        movie = self.movie_cache.get(movie_id) or {}
        raw_title = (movie.get("title") or "").strip()
        m = _OUTER_QUOTES_RE.match(raw_title)
        if m:
            raw_title = m.group(1).strip()
        if not raw_title:
            return f"Unknown Film ({movie_id})"
        return self.normalise_title(raw_title)

    def _parse_session(
        self,
        venue_id: str,
        title: str,
        session: dict,
        now: datetime,
    ) -> RawScreening | None:
        if session.get("isExpired"):
            return None

        start_str = session.get("startsAt")
        if not start_str:
            return None
        try:
            start_time = datetime.fromisoformat(start_str)
        except ValueError:
            return None
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=LOCAL_TZ)
        if start_time < now:
            return None

        labels = _tag_labels(session.get("tags") or [])
        return RawScreening(
            title=title,
            start_time=start_time,
            booking_url=_booking_url(session),
            format_tags=", ".join(labels) if labels else None,
            has_subtitles="Subtitled" in labels,
            has_audio_description="AD" in labels,
            is_relaxed="Relaxed" in labels,
            source_id=f"everyman-{venue_id}-{session.get('id')}",
        )

    async def health_check(self) -> bool:
        try:
            async with self.client() as client:
                resp = await self.get(
                    client, _SCHEDULED_MOVIES_URL, params={"theaterId": HEALTH_CHECK_THEATER}
                )
                return resp.status_code < 400
        except Exception as e:
            logger.warning(f"Everyman: health check failed: {e}")
            return False
