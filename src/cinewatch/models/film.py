"""Film model for canonical film identities."""

from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cinewatch.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from cinewatch.models.film_alias import FilmAlias
    from cinewatch.models.screening import Screening


class Film(Base, TimestampMixin):
    """
    Film model.

    Canonical identity that screenings from every source are attached to.
    Enrichment (posters, credits) is handled elsewhere.
    """

    __tablename__ = "films"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    screenings: Mapped[list["Screening"]] = relationship(
        back_populates="film",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    aliases: Mapped[list["FilmAlias"]] = relationship(
        back_populates="film",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Film(id={self.id!r}, title={self.title!r}, year={self.year})>"
