"""Base adapter interfaces for all cinema sources."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from cinewatch.config import settings
from cinewatch.scrapers.models import RawScreening, RequestThrottle, ScraperConfig
from cinewatch.utils.text import normalise_title

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; cinewatch/0.1)"}


class BaseScraper(ABC):
    """
    Abstract base class for all source adapters.

    Adapters only talk to the network. They hand their output to the
    ingestion pipeline and never write to the database themselves.
    """

    def __init__(self, config: ScraperConfig) -> None:
        self.config = config
        self.throttle = RequestThrottle(config.politeness)

    @property
    def cinema_id(self) -> str:
        return self.config.cinema_id

    @abstractmethod
    async def scrape(self) -> list[RawScreening]:
        """
        Fetch upcoming screenings from the source.

        Returns:
            List of raw screenings

        Raises:
            Should NOT raise exceptions. Return empty list on errors and log warnings.
        """
        pass

    async def health_check(self) -> bool:
        """
        Cheap reachability check, independent of a full scrape.

        Returns:
            True if the source answered with a non-error status

        Raises:
            Should NOT raise exceptions. Return False on errors.
        """
        try:
            async with self.client() as client:
                response = await self.get(client, self.config.base_url)
                return response.status_code < 400
        except Exception as e:
            logger.warning(f"{self.cinema_id}: health check failed: {e}")
            return False

    def client(self) -> httpx.AsyncClient:
        """HTTP client with the configured per-request timeout."""
        return httpx.AsyncClient(
            timeout=settings.scrape_timeout,
            verify=False,
            follow_redirects=True,
            headers=REQUEST_HEADERS,
        )

    async def get(self, client: httpx.AsyncClient, url: str, **kwargs: Any) -> httpx.Response:
        """GET ``url`` once the throttle allows another request."""
        await self.throttle.wait()
        return await client.get(url, **kwargs)

    def normalise_title(self, title: str) -> str:
        """
        Normalize a film title using the standard normalization function.

        Args:
            title: Raw film title from cinema website

        Returns:
            Normalized title
        """
        return normalise_title(title)


class ChainScraper(BaseScraper):
    """
    Adapter covering several venues of the same brand.

    Venues share one origin, so they are fetched one after another with the
    configured politeness delay in between. A failing venue yields an empty
    list for that venue only.
    """

    chain_name: str = "chain"

    def __init__(self, config: ScraperConfig, venue_ids: list[str]) -> None:
        super().__init__(config)
        self.venue_ids = list(venue_ids)

    @abstractmethod
    async def scrape_venue(self, client: httpx.AsyncClient, venue_id: str) -> list[RawScreening]:
        """Fetch screenings for one venue. May raise; the caller isolates failures."""
        pass

    async def scrape_venues(self, venue_ids: list[str] | None = None) -> dict[str, list[RawScreening]]:
        """Scrape venues sequentially, returning screenings keyed by venue id."""
        venue_ids = self.venue_ids if venue_ids is None else venue_ids
        results: dict[str, list[RawScreening]] = {}

        try:
            async with self.client() as client:
                for index, venue_id in enumerate(venue_ids):
                    try:
                        results[venue_id] = await self.scrape_venue(client, venue_id)
                        logger.info(
                            f"{self.chain_name} ({venue_id}): found {len(results[venue_id])} screenings"
                        )
                    except Exception as e:
                        logger.error(f"{self.chain_name} ({venue_id}) scraper error: {e}", exc_info=True)
                        results[venue_id] = []

                    if index < len(venue_ids) - 1:
                        await self.config.politeness.pause()
        except Exception as e:
            logger.error(f"{self.chain_name} chain scrape aborted: {e}", exc_info=True)

        for venue_id in venue_ids:
            results.setdefault(venue_id, [])
        return results

    async def scrape(self) -> list[RawScreening]:
        by_venue = await self.scrape_venues()
        return [screening for screenings in by_venue.values() for screening in screenings]
