"""Film alias model mapping source-specific titles to canonical films."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cinewatch.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from cinewatch.models.film import Film


class FilmAlias(Base, TimestampMixin):
    """Normalised title → film id, so repeat titles skip fuzzy matching."""

    __tablename__ = "film_aliases"
    __table_args__ = (UniqueConstraint("normalized_title", name="uq_normalized_title"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    normalized_title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    film_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("films.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    film: Mapped["Film"] = relationship(back_populates="aliases")

    def __repr__(self) -> str:
        return f"<FilmAlias(normalized_title={self.normalized_title!r}, film_id={self.film_id!r})>"
