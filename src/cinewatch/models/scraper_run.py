"""ScraperRun model: audit record of one adapter execution."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cinewatch.models.base import Base, JSONType

if TYPE_CHECKING:
    from cinewatch.models.cinema import Cinema


class ScraperRunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ANOMALY = "anomaly"
    PARTIAL = "partial"


class AnomalyType(str, Enum):
    LOW_COUNT = "low_count"
    ZERO_RESULTS = "zero_results"
    ERROR = "error"
    HIGH_COUNT = "high_count"


def _str_enum(enum_cls: type[Enum]) -> SAEnum:
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda e: [m.value for m in e],
    )


class ScraperRun(Base):
    """
    One execution of a source adapter for one cinema.

    Written once when the run completes. Afterwards only the resolution
    flags and notes may change.
    """

    __tablename__ = "scraper_runs"
    __table_args__ = (
        CheckConstraint(
            "status != 'anomaly' OR anomaly_type IS NOT NULL",
            name="ck_scraper_runs_anomaly_has_type",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    cinema_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("cinemas.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    triggered_by: Mapped[str] = mapped_column(String(100), nullable=False, default="manual")

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[ScraperRunStatus] = mapped_column(_str_enum(ScraperRunStatus), nullable=False)
    screening_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    baseline_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    anomaly_type: Mapped[AnomalyType | None] = mapped_column(_str_enum(AnomalyType), nullable=True)
    # {"expected_range": {"min": int, "max": int}, "percent_change": float, "error_message": str}
    anomaly_details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Resolution flags, set after the fact by an operator or agent
    auto_fixed: Mapped[bool] = mapped_column(default=False, nullable=False)
    auto_retried: Mapped[bool] = mapped_column(default=False, nullable=False)
    fixed_by_ai: Mapped[bool] = mapped_column(default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Duration, validation summary, failed writes
    run_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    cinema: Mapped["Cinema"] = relationship(back_populates="scraper_runs")

    def mark_anomaly(self, anomaly_type: AnomalyType, details: dict[str, Any]) -> None:
        """Flag the run as anomalous; status and type are always set together."""
        self.status = ScraperRunStatus.ANOMALY
        self.anomaly_type = anomaly_type
        self.anomaly_details = {**(self.anomaly_details or {}), **details}

    def __repr__(self) -> str:
        return (
            f"<ScraperRun(id={self.id!r}, cinema_id={self.cinema_id!r}, "
            f"status={self.status!r}, screening_count={self.screening_count})>"
        )
