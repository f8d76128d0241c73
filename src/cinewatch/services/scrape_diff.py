"""Compare a fresh scrape against the screenings already stored for a cinema.

The diff runs before anything is written, so a scraper that suddenly
returns nothing is caught while the stored screenings are still intact.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinewatch.models import Film, Screening
from cinewatch.scrapers.models import RawScreening
from cinewatch.services.validator import parse_start_time
from cinewatch.utils.dates import LOCAL_TZ, as_utc, utcnow

logger = logging.getLogger(__name__)

COMPARISON_DAYS = 30
MIN_EXISTING_FOR_DROP_CHECK = 5
LARGE_DROP_RATIO = 0.5
RECENT_REMOVAL_DAYS = 1

SCRAPER_BROKEN = "SCRAPER_BROKEN"
LARGE_DROP = "LARGE_DROP"
HOLIDAY = "HOLIDAY"
RECENTLY_ADDED_THEN_REMOVED = "RECENTLY_ADDED_THEN_REMOVED"


@dataclass(frozen=True)
class DiffEntry:
    title: str
    start_time: datetime
    first_seen_at: datetime | None = None

    @property
    def key(self) -> tuple[str, datetime]:
        return self.title.lower().strip(), self.start_time


@dataclass
class ScrapeDiffReport:
    cinema_id: str
    existing_count: int
    new_count: int
    added: list[DiffEntry] = field(default_factory=list)
    removed: list[DiffEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def unchanged_count(self) -> int:
        return self.existing_count - len(self.removed)

    @property
    def has_issues(self) -> bool:
        return bool(self.warnings)

    @property
    def should_block_scrape(self) -> bool:
        return any(w.startswith(SCRAPER_BROKEN) for w in self.warnings)

    def as_dict(self) -> dict:
        return {
            "existing": self.existing_count,
            "new": self.new_count,
            "added": len(self.added),
            "removed": len(self.removed),
            "unchanged": self.unchanged_count,
            "warnings": list(self.warnings),
            "blocked": self.should_block_scrape,
        }


def _in_window(entries: list[DiffEntry], now: datetime) -> dict[tuple[str, datetime], DiffEntry]:
    end = now + timedelta(days=COMPARISON_DAYS)
    return {e.key: e for e in entries if now <= e.start_time <= end}


def compare_screenings(
    cinema_id: str,
    existing: list[DiffEntry],
    scraped: list[RawScreening],
    now: datetime,
) -> ScrapeDiffReport:
    """
    Diff stored screenings against a scrape over the next ``COMPARISON_DAYS``.

    Screenings are matched on lower-cased title and UTC start time. Scraped
    screenings without a usable start time are ignored.
    """
    fresh = []
    for screening in scraped:
        start = parse_start_time(screening.start_time, LOCAL_TZ)
        if start is not None:
            fresh.append(DiffEntry(screening.title, as_utc(start)))

    old = _in_window(existing, now)
    new = _in_window(fresh, now)

    report = ScrapeDiffReport(
        cinema_id=cinema_id,
        existing_count=len(old),
        new_count=len(new),
        added=[e for key, e in new.items() if key not in old],
        removed=[e for key, e in old.items() if key not in new],
    )

    if (
        report.existing_count >= MIN_EXISTING_FOR_DROP_CHECK
        and len(report.removed) > report.existing_count * LARGE_DROP_RATIO
    ):
        percent = len(report.removed) / report.existing_count * 100
        report.warnings.append(
            f"{LARGE_DROP}: {len(report.removed)} of {report.existing_count} "
            f"screenings removed ({percent:.0f}%)"
        )

    if report.existing_count > 0 and report.new_count == 0:
        report.warnings.append(
            f"{SCRAPER_BROKEN}: 0 screenings scraped, {report.existing_count} exist in the database"
        )

    for entry in report.added:
        local = entry.start_time.astimezone(LOCAL_TZ)
        if local.month == 12 and local.day == 25:
            report.warnings.append(f"{HOLIDAY}: {entry.title} scheduled on Christmas Day")

    for entry in report.removed:
        if entry.first_seen_at is None:
            continue
        days = (now - entry.first_seen_at).days
        if days <= RECENT_REMOVAL_DAYS:
            report.warnings.append(
                f"{RECENTLY_ADDED_THEN_REMOVED}: {entry.title} was added {days} day(s) ago"
            )

    return report


class ScrapeDiffer:
    """Loads the stored side of the diff for one cinema."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def stored_screenings(self, cinema_id: str, now: datetime) -> list[DiffEntry]:
        result = await self.db.execute(
            select(Screening.raw_title, Film.title, Screening.start_time, Screening.first_seen_at)
            .join(Film, Screening.film_id == Film.id)
            .where(
                Screening.cinema_id == cinema_id,
                Screening.start_time >= now,
                Screening.start_time <= now + timedelta(days=COMPARISON_DAYS),
            )
        )
        return [
            DiffEntry(
                title=raw_title or film_title,
                start_time=as_utc(start_time),
                first_seen_at=as_utc(first_seen_at) if first_seen_at else None,
            )
            for raw_title, film_title, start_time, first_seen_at in result.all()
        ]

    async def diff(
        self,
        cinema_id: str,
        screenings: list[RawScreening],
        now: datetime | None = None,
    ) -> ScrapeDiffReport:
        now = now or utcnow()
        existing = await self.stored_screenings(cinema_id, now)
        report = compare_screenings(cinema_id, existing, screenings, now)
        if report.has_issues:
            logger.warning(f"Scrape diff for {cinema_id}: {'; '.join(report.warnings)}")
        return report
