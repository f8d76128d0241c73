"""Timezone helpers shared by ingestion and anomaly detection."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from cinewatch.config import settings

LOCAL_TZ = ZoneInfo(settings.local_timezone)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Convert to an aware UTC datetime.

    Naive values are assumed to already be UTC, which is how SQLite hands
    back timestamps that were stored as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_date(value: datetime) -> date:
    """Calendar date of ``value`` in cinema-local time."""
    return as_utc(value).astimezone(LOCAL_TZ).date()


def local_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of a local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=LOCAL_TZ)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=LOCAL_TZ)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5
