"""Per-cinema expected screening counts used for anomaly detection."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from cinewatch.models.base import Base, TimestampMixin


class CinemaTier(str, Enum):
    TOP = "top"
    STANDARD = "standard"


class CinemaBaseline(Base, TimestampMixin):
    """
    Baseline for one cinema.

    ``tolerance_percent`` overrides the tier's default drop threshold when set.
    With ``manual_override`` the averages are operator-owned and recalculation
    leaves them alone.
    """

    __tablename__ = "cinema_baselines"

    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tier: Mapped[CinemaTier] = mapped_column(
        SAEnum(
            CinemaTier,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=CinemaTier.STANDARD,
        nullable=False,
    )
    weekday_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    weekend_avg: Mapped[float | None] = mapped_column(Float, nullable=True)
    tolerance_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    manual_override: Mapped[bool] = mapped_column(default=False, nullable=False)
    last_calculated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CinemaBaseline(cinema_id={self.cinema_id!r}, tier={self.tier!r}, "
            f"weekday_avg={self.weekday_avg}, weekend_avg={self.weekend_avg})>"
        )
