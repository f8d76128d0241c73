"""Film identity resolution with alias lookup and fuzzy matching."""

import logging
from typing import Protocol

from rapidfuzz import fuzz
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.models.film import Film
from cinewatch.models.film_alias import FilmAlias
from cinewatch.utils.text import extract_year, normalise_title, slugify

logger = logging.getLogger(__name__)


class FilmResolver(Protocol):
    """Anything that can turn a scraped title into a canonical film id."""

    async def resolve_or_create_film(self, title: str, year: int | None = None) -> str: ...


class FilmMatcher:
    """
    Resolves cinema film titles to canonical film records.

    Uses a multi-stage matching process:
    1. Check film_aliases for exact match
    2. Fuzzy match against existing films
    3. Create a placeholder film
    4. Store alias for future lookups
    """

    FUZZY_THRESHOLD = 85  # Minimum similarity score for fuzzy matching

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def resolve_or_create_film(self, title: str, year: int | None = None) -> str:
        """
        Match a raw cinema title to an existing film or create a new one.

        Args:
            title: Film title as it appears on cinema website
            year: Release year, when the source provides one

        Returns:
            Id of the matched or newly created film
        """
        normalized_title = normalise_title(title)
        if year is None:
            year = extract_year(title)

        film = await self._check_alias(normalized_title)
        if film:
            return film.id

        film = await self._fuzzy_match(normalized_title, year)
        if film:
            await self._store_alias(normalized_title, film.id)
            return film.id

        film = await self._create_placeholder(normalized_title, year)
        logger.info(f"Created placeholder film: {film.title!r} ({film.id})")
        await self._store_alias(normalized_title, film.id)
        return film.id

    async def _check_alias(self, normalized_title: str) -> Film | None:
        query = (
            select(Film)
            .join(FilmAlias)
            .where(FilmAlias.normalized_title == normalized_title)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _fuzzy_match(self, normalized_title: str, year: int | None) -> Film | None:
        query = select(Film)
        if year:
            query = query.where((Film.year == year) | (Film.year.is_(None)))
        result = await self.db.execute(query)
        films = result.scalars().all()

        best_score = 0.0
        best_film = None
        for film in films:
            score = fuzz.ratio(normalized_title.lower(), film.title.lower())
            if score > best_score:
                best_score = score
                best_film = film

        if best_score >= self.FUZZY_THRESHOLD and best_film:
            logger.debug(f"Fuzzy match: {best_score:.1f}% - '{normalized_title}' -> '{best_film.title}'")
            return best_film
        return None

    async def _create_placeholder(self, normalized_title: str, year: int | None) -> Film:
        film_id = self._generate_film_id(normalized_title, year)

        existing = await self.db.get(Film, film_id)
        if existing:
            return existing

        film = Film(id=film_id, title=normalized_title, year=year)
        try:
            async with self.db.begin_nested():
                self.db.add(film)
        except IntegrityError:
            # Created concurrently by another run
            existing = await self.db.get(Film, film_id)
            if existing:
                return existing
            raise
        return film

    async def _store_alias(self, normalized_title: str, film_id: str) -> None:
        query = select(FilmAlias).where(FilmAlias.normalized_title == normalized_title)
        result = await self.db.execute(query)
        if result.scalar_one_or_none():
            return

        try:
            async with self.db.begin_nested():
                self.db.add(FilmAlias(normalized_title=normalized_title, film_id=film_id))
        except IntegrityError:
            logger.debug(f"Alias {normalized_title!r} already stored")

    def _generate_film_id(self, title: str, year: int | None) -> str:
        slug = slugify(title) or "untitled"
        if year:
            return f"{slug}-{year}"
        return slug
