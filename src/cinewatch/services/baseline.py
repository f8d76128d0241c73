"""Per-cinema baselines: expected weekday/weekend screening counts."""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.config import settings
from cinewatch.models import Cinema, CinemaBaseline, CinemaTier, ScraperRun, ScraperRunStatus
from cinewatch.utils.dates import as_utc, is_weekend, local_date, utcnow

logger = logging.getLogger(__name__)

# Institutions treated as top tier even when they belong to a group
FLAGSHIP_CINEMAS = frozenset(
    {
        "bfi-southbank",
        "bfi-imax",
        "barbican",
        "ica",
        "prince-charles",
    }
)

MIN_TOLERANCE_PERCENT = 10.0
MAX_TOLERANCE_PERCENT = 100.0


class InvalidBaselineConfig(ValueError):
    """Operator-supplied baseline settings are out of range."""


def tier_for_cinema(cinema: Cinema) -> CinemaTier:
    """Independents and flagship institutions are top tier; chain venues are standard."""
    if cinema.is_independent or cinema.id in FLAGSHIP_CINEMAS:
        return CinemaTier.TOP
    return CinemaTier.STANDARD


def compute_averages(samples: Iterable[tuple[date, int]]) -> tuple[float | None, float | None]:
    """
    Average screening counts split by day type.

    Args:
        samples: (local date, screening count) pairs, one per run

    Returns:
        (weekday average, weekend average); None where there is no sample
    """
    weekday: list[int] = []
    weekend: list[int] = []
    for day, count in samples:
        (weekend if is_weekend(day) else weekday).append(count)

    def _avg(values: list[int]) -> float | None:
        return round(sum(values) / len(values), 1) if values else None

    return _avg(weekday), _avg(weekend)


def expected_count(baseline: CinemaBaseline, day: date) -> float | None:
    """Baseline expectation for ``day`` (weekday or weekend average)."""
    return baseline.weekend_avg if is_weekend(day) else baseline.weekday_avg


class BaselineTracker:
    """Reads, recalculates and edits CinemaBaseline rows."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, cinema_id: str) -> CinemaBaseline | None:
        return await self.db.get(CinemaBaseline, cinema_id)

    async def get_or_create(self, cinema: Cinema) -> CinemaBaseline:
        """Return the cinema's baseline, creating an empty one with its tier if missing."""
        baseline = await self.get(cinema.id)
        if baseline is None:
            baseline = CinemaBaseline(
                cinema_id=cinema.id,
                tier=tier_for_cinema(cinema),
                manual_override=False,
            )
            self.db.add(baseline)
            await self.db.flush()
            logger.info(f"Created baseline for {cinema.id} (tier={baseline.tier.value})")
        return baseline

    async def recalculate(self, cinema: Cinema, now: datetime | None = None) -> CinemaBaseline:
        """
        Recompute averages from successful runs in the trailing window.

        Baselines pinned with ``manual_override`` are returned untouched.
        """
        baseline = await self.get_or_create(cinema)
        if baseline.manual_override:
            logger.info(f"Baseline for {cinema.id} is manually overridden, skipping recalculation")
            return baseline

        now = now or utcnow()
        window_start = as_utc(now) - timedelta(days=settings.baseline_window_days)
        result = await self.db.execute(
            select(ScraperRun.started_at, ScraperRun.screening_count).where(
                ScraperRun.cinema_id == cinema.id,
                ScraperRun.status == ScraperRunStatus.SUCCESS,
                ScraperRun.completed_at.is_not(None),
                ScraperRun.started_at >= window_start,
            )
        )
        samples = [(local_date(started_at), count) for started_at, count in result.all()]

        weekday_avg, weekend_avg = compute_averages(samples)
        baseline.weekday_avg = weekday_avg
        baseline.weekend_avg = weekend_avg
        baseline.last_calculated = as_utc(now)
        await self.db.flush()

        logger.info(
            f"Recalculated baseline for {cinema.id} from {len(samples)} runs: "
            f"weekday={weekday_avg}, weekend={weekend_avg}"
        )
        return baseline

    async def update_config(
        self,
        cinema: Cinema,
        *,
        tier: CinemaTier | None = None,
        tolerance_percent: float | None = None,
        weekday_avg: float | None = None,
        weekend_avg: float | None = None,
        manual_override: bool | None = None,
        notes: str | None = None,
    ) -> CinemaBaseline:
        """Apply operator changes; only the arguments that are given are changed."""
        if tolerance_percent is not None and not (
            MIN_TOLERANCE_PERCENT <= tolerance_percent <= MAX_TOLERANCE_PERCENT
        ):
            raise InvalidBaselineConfig(
                f"tolerance_percent must be between {MIN_TOLERANCE_PERCENT:g} "
                f"and {MAX_TOLERANCE_PERCENT:g}"
            )

        baseline = await self.get_or_create(cinema)
        if tier is not None:
            baseline.tier = tier
        if tolerance_percent is not None:
            baseline.tolerance_percent = tolerance_percent
        if weekday_avg is not None:
            baseline.weekday_avg = weekday_avg
        if weekend_avg is not None:
            baseline.weekend_avg = weekend_avg
        if manual_override is not None:
            baseline.manual_override = manual_override
        if notes is not None:
            baseline.notes = notes
        await self.db.flush()
        return baseline
