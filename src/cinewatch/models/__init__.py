"""SQLAlchemy ORM models."""

from cinewatch.models.base import Base
from cinewatch.models.cinema import Cinema
from cinewatch.models.cinema_baseline import CinemaBaseline, CinemaTier
from cinewatch.models.film import Film
from cinewatch.models.film_alias import FilmAlias
from cinewatch.models.scraper_run import AnomalyType, ScraperRun, ScraperRunStatus
from cinewatch.models.screening import LinkStatus, Screening

__all__ = [
    "AnomalyType",
    "Base",
    "Cinema",
    "CinemaBaseline",
    "CinemaTier",
    "Film",
    "FilmAlias",
    "LinkStatus",
    "ScraperRun",
    "ScraperRunStatus",
    "Screening",
]
