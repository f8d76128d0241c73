"""Booking-link checks for stored screenings.

Each link is fetched once with redirects followed, and the outcome is
stored on the screening as its ``link_status``. Links are checked
least-recently first, so repeated calls work through a cinema's programme.
"""

import logging
import re
from dataclasses import dataclass

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.config import settings
from cinewatch.models import LinkStatus, Screening
from cinewatch.scrapers.base import REQUEST_HEADERS
from cinewatch.scrapers.models import Politeness, RequestThrottle
from cinewatch.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10

_SOLD_OUT_RE = re.compile(r"\bsold[\s-]*out\b", re.IGNORECASE)


@dataclass
class LinkCheckResult:
    screening_id: int
    url: str
    status: LinkStatus
    http_status: int | None = None
    final_url: str | None = None
    error: str | None = None


def classify_response(response: httpx.Response) -> LinkStatus:
    """
    Map a fetched booking page to a link status.

    4xx and 5xx are broken. A page announcing the screening is sold out is
    ``sold_out``. A page reached through one or more redirects is
    ``redirect``. Anything else is verified.
    """
    if response.status_code >= 400:
        return LinkStatus.BROKEN
    if _SOLD_OUT_RE.search(response.text or ""):
        return LinkStatus.SOLD_OUT
    if response.history or 300 <= response.status_code < 400:
        return LinkStatus.REDIRECT
    return LinkStatus.VERIFIED


class BookingLinkChecker:
    """Checks upcoming screenings' booking links for one cinema."""

    def __init__(self, db: AsyncSession, politeness: Politeness | None = None) -> None:
        self.db = db
        self.throttle = RequestThrottle(politeness or Politeness())

    async def due_for_check(self, cinema_id: str, limit: int = DEFAULT_LIMIT) -> list[Screening]:
        """Upcoming screenings with a booking URL, never-checked ones first."""
        result = await self.db.execute(
            select(Screening)
            .where(
                Screening.cinema_id == cinema_id,
                Screening.booking_url.is_not(None),
                Screening.start_time >= utcnow(),
            )
            .order_by(
                Screening.link_checked_at.asc().nulls_first(),
                Screening.start_time,
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def check_cinema(self, cinema_id: str, limit: int = DEFAULT_LIMIT) -> list[LinkCheckResult]:
        """Check up to ``limit`` links and store each outcome. Does not commit."""
        screenings = await self.due_for_check(cinema_id, limit)
        if not screenings:
            return []

        results = []
        async with httpx.AsyncClient(
            timeout=settings.scrape_timeout,
            follow_redirects=True,
            headers=REQUEST_HEADERS,
        ) as client:
            for screening in screenings:
                result = await self.check(client, screening)
                screening.link_status = result.status
                screening.link_checked_at = utcnow()
                results.append(result)

        await self.db.flush()
        broken = sum(1 for r in results if r.status == LinkStatus.BROKEN)
        logger.info(f"Checked {len(results)} booking links for {cinema_id}: {broken} broken")
        return results

    async def check(self, client: httpx.AsyncClient, screening: Screening) -> LinkCheckResult:
        url = screening.booking_url
        await self.throttle.wait()
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Booking link for screening {screening.id} failed: {e}")
            return LinkCheckResult(screening.id, url, LinkStatus.BROKEN, error=str(e) or type(e).__name__)

        return LinkCheckResult(
            screening.id,
            url,
            classify_response(response),
            http_status=response.status_code,
            final_url=str(response.url),
        )
