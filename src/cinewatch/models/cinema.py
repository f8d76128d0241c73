"""Cinema model for storing cinema venue information."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cinewatch.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from cinewatch.models.scraper_run import ScraperRun
    from cinewatch.models.screening import Screening

INDEPENDENT_CHAIN = "independent"


class Cinema(Base, TimestampMixin):
    """
    Cinema venue model.

    Stores the venue's identity, its parent chain (if any) and the
    configuration used to build its source adapter.
    """

    __tablename__ = "cinemas"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    chain: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    # Scraper configuration
    scraper_type: Mapped[str] = mapped_column(String(50), nullable=False)
    scraper_config: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Relationships
    screenings: Mapped[list["Screening"]] = relationship(
        back_populates="cinema",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    scraper_runs: Mapped[list["ScraperRun"]] = relationship(
        back_populates="cinema",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_independent(self) -> bool:
        return self.chain is None or self.chain.lower() == INDEPENDENT_CHAIN

    def __repr__(self) -> str:
        return f"<Cinema(id={self.id!r}, name={self.name!r}, chain={self.chain!r})>"
