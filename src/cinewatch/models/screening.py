"""Screening model for canonical film screening times at cinemas."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cinewatch.models.base import Base

if TYPE_CHECKING:
    from cinewatch.models.cinema import Cinema
    from cinewatch.models.film import Film


class LinkStatus(str, Enum):
    """Result of the last booking-link check."""

    VERIFIED = "verified"
    BROKEN = "broken"
    REDIRECT = "redirect"
    SOLD_OUT = "sold_out"
    UNCHECKED = "unchecked"


class Screening(Base):
    """
    Canonical screening.

    Identified by (film, cinema, start time). The unique constraint on that
    triple is what makes repeated ingestion an update rather than a duplicate.
    Rows are created on first ingestion and never deleted by the pipeline.
    """

    __tablename__ = "screenings"
    __table_args__ = (
        UniqueConstraint(
            "film_id",
            "cinema_id",
            "start_time",
            name="uq_screening_film_cinema_time",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Foreign keys
    film_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("films.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Screening details
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    screen_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    format_tags: Mapped[str | None] = mapped_column(String(200), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    event_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    booking_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Accessibility
    has_subtitles: Mapped[bool] = mapped_column(default=False, nullable=False)
    has_audio_description: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_relaxed: Mapped[bool] = mapped_column(default=False, nullable=False)

    # Booking link verification
    link_status: Mapped[LinkStatus] = mapped_column(
        SAEnum(
            LinkStatus,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=LinkStatus.UNCHECKED,
        nullable=False,
    )
    link_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Source tracking
    source_id: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    raw_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    cinema: Mapped["Cinema"] = relationship(back_populates="screenings")
    film: Mapped["Film"] = relationship(back_populates="screenings")

    def __repr__(self) -> str:
        return (
            f"<Screening(film_id={self.film_id!r}, "
            f"cinema_id={self.cinema_id!r}, "
            f"start_time={self.start_time})>"
        )
