"""Tiered anomaly detection over completed scraper runs.

``classify`` is the whole decision rule and does no I/O. ``AnomalyDetector``
gathers the inputs for it from the database: the count from the same
weekday a week earlier, falling back to the cinema's baseline.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.config import settings
from cinewatch.models import (
    AnomalyType,
    Cinema,
    CinemaBaseline,
    CinemaTier,
    ScraperRun,
    ScraperRunStatus,
)
from cinewatch.services.baseline import BaselineTracker, expected_count
from cinewatch.utils.dates import local_date, local_day_bounds, utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Healthy:
    percent_change: float
    anomaly_type = None


@dataclass(frozen=True)
class LowCount:
    percent_change: float
    threshold: float
    anomaly_type = AnomalyType.LOW_COUNT


@dataclass(frozen=True)
class ZeroResults:
    percent_change: float
    anomaly_type = AnomalyType.ZERO_RESULTS


@dataclass(frozen=True)
class HighCount:
    percent_change: float
    ceiling: float
    anomaly_type = AnomalyType.HIGH_COUNT


AnomalyClassification = Union[Healthy, LowCount, ZeroResults, HighCount]


def percent_change(current: float, last_week: float) -> float:
    """Relative change against last week; 0 when there is nothing to compare with."""
    if not last_week:
        return 0.0
    return (current - last_week) / last_week * 100


def drop_threshold(tier: CinemaTier, tolerance_percent: float | None = None) -> float:
    """Largest tolerated drop, in percent, before a run is flagged."""
    if tolerance_percent is not None:
        return tolerance_percent
    if tier == CinemaTier.TOP:
        return settings.top_tier_drop_percent
    return settings.standard_tier_drop_percent


def classify(
    current: int,
    last_week: float,
    tier: CinemaTier,
    tolerance_percent: float | None = None,
    high_count_ceiling: float | None = None,
) -> AnomalyClassification:
    """
    Classify today's count against last week's.

    Zero screenings is always an anomaly. Otherwise a drop strictly beyond
    the tier threshold is ``LowCount`` and a rise beyond the ceiling is
    ``HighCount``.
    """
    change = percent_change(current, last_week)
    if current == 0:
        return ZeroResults(percent_change=change)

    threshold = drop_threshold(tier, tolerance_percent)
    if change < -threshold:
        return LowCount(percent_change=change, threshold=threshold)

    ceiling = settings.high_count_ceiling_percent if high_count_ceiling is None else high_count_ceiling
    if change > ceiling:
        return HighCount(percent_change=change, ceiling=ceiling)

    return Healthy(percent_change=change)


def should_block_scrape(anomaly_type: AnomalyType | None, change: float | None) -> bool:
    """Whether further scraping should pause until someone looks at the source."""
    if anomaly_type in (AnomalyType.ZERO_RESULTS, AnomalyType.ERROR):
        return True
    return change is not None and change < -settings.block_drop_percent


def expected_range(
    last_week: float,
    tier: CinemaTier,
    tolerance_percent: float | None,
    high_count_ceiling: float | None = None,
) -> dict[str, int]:
    threshold = drop_threshold(tier, tolerance_percent)
    ceiling = settings.high_count_ceiling_percent if high_count_ceiling is None else high_count_ceiling
    return {
        "min": math.ceil(last_week * (100 - threshold) / 100),
        "max": math.floor(last_week * (100 + ceiling) / 100),
    }


def describe(classification: AnomalyClassification, current: int, last_week: float | None) -> list[str]:
    """Human-readable warnings for a classification."""
    if isinstance(classification, ZeroResults):
        return ["Zero screenings scraped - scraper likely broken"]
    if isinstance(classification, LowCount):
        return [
            f"Screening count dropped {abs(classification.percent_change):.0f}% "
            f"(from {last_week:g} to {current})"
        ]
    if isinstance(classification, HighCount):
        return [
            f"Screening count rose {classification.percent_change:.0f}% "
            f"(from {last_week:g} to {current}) - possible duplicate ingestion"
        ]
    return []


# ---------------------------------------------------------------------------
# Health report
# ---------------------------------------------------------------------------


HEALTHY = "healthy"
ANOMALY = "anomaly"
UNKNOWN = "unknown"


@dataclass
class CinemaHealth:
    cinema_id: str
    cinema_name: str
    status: str
    anomaly_detected: bool = False
    anomaly_type: AnomalyType | None = None
    should_block_scrape: bool = False
    warnings: list[str] = field(default_factory=list)
    today_count: int | None = None
    last_week_count: float | None = None
    percent_change: float | None = None
    tier: CinemaTier | None = None
    last_run_at: datetime | None = None


@dataclass
class HealthReport:
    checked_at: datetime
    results: list[CinemaHealth]

    @property
    def healthy(self) -> int:
        return sum(1 for r in self.results if r.status == HEALTHY)

    @property
    def anomalies(self) -> int:
        return sum(1 for r in self.results if r.anomaly_detected)

    @property
    def blocked(self) -> int:
        return sum(1 for r in self.results if r.should_block_scrape)

    @property
    def unknown(self) -> int:
        return sum(1 for r in self.results if r.status == UNKNOWN)


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class AnomalyDetector:
    """Runs ``classify`` against stored runs and baselines."""

    def __init__(
        self,
        db: AsyncSession,
        baselines: BaselineTracker | None = None,
        high_count_ceiling: float | None = None,
    ) -> None:
        self.db = db
        self.baselines = baselines or BaselineTracker(db)
        self.high_count_ceiling = (
            settings.high_count_ceiling_percent if high_count_ceiling is None else high_count_ceiling
        )

    async def last_week_count(self, cinema_id: str, started_at: datetime) -> int | None:
        """Count of the latest completed, non-failed run on the same local weekday a week earlier."""
        start, end = local_day_bounds(local_date(started_at) - timedelta(days=7))
        result = await self.db.execute(
            select(ScraperRun.screening_count)
            .where(
                ScraperRun.cinema_id == cinema_id,
                ScraperRun.completed_at.is_not(None),
                ScraperRun.status != ScraperRunStatus.FAILED,
                ScraperRun.started_at >= start,
                ScraperRun.started_at < end,
            )
            .order_by(ScraperRun.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _comparison(
        self, cinema: Cinema, started_at: datetime
    ) -> tuple[float | None, CinemaBaseline]:
        baseline = await self.baselines.get_or_create(cinema)
        last_week: float | None = await self.last_week_count(cinema.id, started_at)
        if last_week is None:
            last_week = expected_count(baseline, local_date(started_at))
        return last_week, baseline

    async def evaluate_run(self, run: ScraperRun, cinema: Cinema) -> AnomalyClassification:
        """
        Classify a completed run and record the outcome on it.

        Sets ``baseline_count`` and, for anomalies, the anomaly type and
        details. The run is modified in place and not flushed.
        """
        if run.completed_at is None:
            raise ValueError("Anomaly detection requires a completed scraper run")

        last_week, baseline = await self._comparison(cinema, run.started_at)
        classification = classify(
            run.screening_count,
            last_week or 0,
            baseline.tier,
            baseline.tolerance_percent,
            self.high_count_ceiling,
        )
        if last_week is not None:
            run.baseline_count = round(last_week)

        if classification.anomaly_type is not None:
            details: dict = {"percent_change": round(classification.percent_change, 1)}
            if last_week is not None:
                details["expected_range"] = expected_range(
                    last_week, baseline.tier, baseline.tolerance_percent, self.high_count_ceiling
                )
            run.mark_anomaly(classification.anomaly_type, details)
            logger.warning(
                f"{cinema.id}: {classification.anomaly_type.value} "
                f"({run.screening_count} vs {last_week}, {classification.percent_change:.1f}%)"
            )
        return classification

    async def latest_completed_run(self, cinema_id: str) -> ScraperRun | None:
        result = await self.db.execute(
            select(ScraperRun)
            .where(ScraperRun.cinema_id == cinema_id, ScraperRun.completed_at.is_not(None))
            .order_by(ScraperRun.started_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def check_cinema(self, cinema: Cinema) -> CinemaHealth:
        """Health of one cinema judged from its most recent completed run."""
        run = await self.latest_completed_run(cinema.id)
        if run is None:
            return CinemaHealth(
                cinema_id=cinema.id,
                cinema_name=cinema.name,
                status=UNKNOWN,
                warnings=["No completed scraper runs"],
            )

        if run.status == ScraperRunStatus.FAILED:
            error = (run.anomaly_details or {}).get("error_message") or "unknown error"
            return CinemaHealth(
                cinema_id=cinema.id,
                cinema_name=cinema.name,
                status=ANOMALY,
                anomaly_detected=True,
                anomaly_type=AnomalyType.ERROR,
                should_block_scrape=True,
                warnings=[f"Last scrape failed: {error}"],
                today_count=run.screening_count,
                last_run_at=run.started_at,
            )

        last_week, baseline = await self._comparison(cinema, run.started_at)
        classification = classify(
            run.screening_count,
            last_week or 0,
            baseline.tier,
            baseline.tolerance_percent,
            self.high_count_ceiling,
        )
        detected = classification.anomaly_type is not None
        return CinemaHealth(
            cinema_id=cinema.id,
            cinema_name=cinema.name,
            status=ANOMALY if detected else HEALTHY,
            anomaly_detected=detected,
            anomaly_type=classification.anomaly_type,
            should_block_scrape=should_block_scrape(
                classification.anomaly_type, classification.percent_change
            ),
            warnings=describe(classification, run.screening_count, last_week),
            today_count=run.screening_count,
            last_week_count=last_week,
            percent_change=round(classification.percent_change, 1),
            tier=baseline.tier,
            last_run_at=run.started_at,
        )

    async def check_all(self, budget_seconds: float | None = None) -> HealthReport:
        """
        Check every active cinema within an overall time budget.

        Cinemas not reached before the budget runs out are reported as unknown.
        """
        budget = settings.health_check_budget_seconds if budget_seconds is None else budget_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget

        result = await self.db.execute(
            select(Cinema).where(Cinema.is_active.is_(True)).order_by(Cinema.name)
        )
        cinemas = [(c, c.id, c.name) for c in result.scalars().all()]

        results: list[CinemaHealth] = []
        for cinema, cinema_id, cinema_name in cinemas:
            remaining = deadline - loop.time()
            if remaining <= 0:
                results.append(
                    CinemaHealth(cinema_id, cinema_name, UNKNOWN, warnings=["Health check budget exhausted"])
                )
                continue
            try:
                results.append(await asyncio.wait_for(self.check_cinema(cinema), timeout=remaining))
            except asyncio.TimeoutError:
                logger.warning(f"Health check timed out at {cinema_id}")
                results.append(
                    CinemaHealth(cinema_id, cinema_name, UNKNOWN, warnings=["Health check timed out"])
                )
            except Exception as e:
                logger.error(f"Health check failed for {cinema_id}: {e}", exc_info=True)
                results.append(
                    CinemaHealth(cinema_id, cinema_name, UNKNOWN, warnings=[f"Health check failed: {e}"])
                )

        report = HealthReport(checked_at=utcnow(), results=results)
        logger.info(
            f"Health check: {report.healthy} healthy, {report.anomalies} anomalies, "
            f"{report.blocked} blocked, {report.unknown} unknown"
        )
        return report
