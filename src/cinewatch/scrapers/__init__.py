"""Adapter registry mapping scraper types to adapter classes."""

from dataclasses import replace
from typing import Type

from cinewatch.scrapers.base import BaseScraper, ChainScraper
from cinewatch.scrapers.castle import CastleScraper
from cinewatch.scrapers.everyman import EverymanScraper
from cinewatch.scrapers.models import Politeness, RawScreening, ScraperConfig
from cinewatch.scrapers.nickel import NickelScraper
from cinewatch.scrapers.rio import RioScraper
from cinewatch.scrapers.structured_data import StructuredDataScraper

# Single-venue adapters
SCRAPER_REGISTRY: dict[str, Type[BaseScraper]] = {
    "castle": CastleScraper,
    "nickel": NickelScraper,
    "rio": RioScraper,
}

# Adapters covering several venues of one brand
CHAIN_REGISTRY: dict[str, Type[ChainScraper]] = {
    "everyman": EverymanScraper,
}

# Generic JSON-LD adapter, configured entirely from the cinema's scraper_config
STRUCTURED_DATA_TYPE = "jsonld"


def _politeness(scraper_config: dict) -> Politeness:
    return Politeness(
        requests_per_minute=int(scraper_config.get("requests_per_minute", 30)),
        delay_seconds=float(scraper_config.get("delay_seconds", 1.0)),
    )


def get_scraper(
    scraper_type: str,
    cinema_id: str,
    scraper_config: dict | None = None,
) -> BaseScraper | None:
    """
    Get an adapter instance for one cinema.

    Args:
        scraper_type: The scraper type (e.g., "castle", "everyman")
        cinema_id: Cinema the adapter produces screenings for
        scraper_config: Optional configuration dict from the cinema record

    Returns:
        Adapter instance or None if the type is unknown or under-configured
    """
    scraper_config = scraper_config or {}

    if scraper_type in CHAIN_REGISTRY:
        return get_chain_scraper(scraper_type, [scraper_config.get("venue_id", cinema_id)])

    if scraper_type == STRUCTURED_DATA_TYPE:
        url = scraper_config.get("url")
        if not url:
            return None
        scraper = StructuredDataScraper(
            ScraperConfig(cinema_id=cinema_id, base_url=url, politeness=_politeness(scraper_config))
        )
        scraper.source_prefix = cinema_id
        return scraper

    scraper_class = SCRAPER_REGISTRY.get(scraper_type)
    if scraper_class:
        scraper = scraper_class()
        if scraper.cinema_id != cinema_id:
            scraper.config = replace(scraper.config, cinema_id=cinema_id)
        return scraper
    return None


def get_chain_scraper(scraper_type: str, venue_ids: list[str]) -> ChainScraper | None:
    """Get a chain adapter covering ``venue_ids``, or None for unknown types."""
    chain_class = CHAIN_REGISTRY.get(scraper_type)
    if chain_class:
        return chain_class(venue_ids=venue_ids)
    return None


__all__ = [
    "CHAIN_REGISTRY",
    "SCRAPER_REGISTRY",
    "BaseScraper",
    "CastleScraper",
    "ChainScraper",
    "EverymanScraper",
    "NickelScraper",
    "Politeness",
    "RawScreening",
    "RioScraper",
    "ScraperConfig",
    "StructuredDataScraper",
    "get_chain_scraper",
    "get_scraper",
]
