"""Business-rule validation of raw screenings before ingestion.

Every rule is checked independently, so a record collects all of its
problems at once. Messages use a ``code: detail`` format; the code is what
the batch summary counts.

Errors reject the record. Warnings are informational for a human reviewer.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

from cinewatch.config import settings
from cinewatch.scrapers.models import RawScreening

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 2
MAX_TITLE_LENGTH = 200

# (month, day) → name. Most cinemas are closed.
CLOSED_DATES: dict[tuple[int, int], str] = {
    (12, 25): "Christmas Day",
}

# (month, day) → name. Some cinemas open, some don't.
WARNING_DATES: dict[tuple[int, int], str] = {
    (12, 24): "Christmas Eve",
    (12, 26): "Boxing Day",
    (1, 1): "New Year's Day",
}

_PLACEHOLDER_RE = re.compile(r"(?<![a-z0-9])(undefined|null)(?![a-z0-9])", re.IGNORECASE)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class RejectedScreening:
    screening: RawScreening
    errors: list[str]


@dataclass
class ValidationSummary:
    total: int = 0
    valid: int = 0
    rejected: int = 0
    warnings: int = 0
    duplicates: int = 0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    warnings_by_type: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "valid": self.valid,
            "rejected": self.rejected,
            "warnings": self.warnings,
            "duplicates": self.duplicates,
            "errors_by_type": dict(self.errors_by_type),
            "warnings_by_type": dict(self.warnings_by_type),
        }


@dataclass
class ValidationReport:
    accepted: list[RawScreening]
    rejected: list[RejectedScreening]
    summary: ValidationSummary


def message_code(message: str) -> str:
    """The rule code of a ``code: detail`` message."""
    return message.split(":", 1)[0]


def parse_start_time(value: datetime | str | None, tz: ZoneInfo) -> datetime | None:
    """Coerce a raw start time into an aware datetime, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value


class ScreeningValidator:
    """Applies the screening rules with configurable hours and horizon."""

    def __init__(
        self,
        earliest_hour: int | None = None,
        latest_hour: int | None = None,
        horizon_days: int | None = None,
        tz: ZoneInfo | None = None,
    ) -> None:
        self.earliest_hour = settings.validator_earliest_hour if earliest_hour is None else earliest_hour
        self.latest_hour = settings.validator_latest_hour if latest_hour is None else latest_hour
        self.horizon_days = settings.validator_horizon_days if horizon_days is None else horizon_days
        self.tz = tz or ZoneInfo(settings.local_timezone)

    def validate(self, screening: RawScreening, now: datetime | None = None) -> ValidationResult:
        now = now or datetime.now(self.tz)
        result = ValidationResult()
        self._check_title(screening, result)
        self._check_datetime(screening, now, result)
        self._check_booking_url(screening, result)
        return result

    def _check_title(self, screening: RawScreening, result: ValidationResult) -> None:
        title = (screening.title or "").strip()
        if len(title) < MIN_TITLE_LENGTH:
            result.errors.append("title_too_short: Film title is too short or empty")
        elif len(title) > MAX_TITLE_LENGTH:
            result.errors.append(f"title_too_long: Film title exceeds {MAX_TITLE_LENGTH} characters")

    def _check_datetime(self, screening: RawScreening, now: datetime, result: ValidationResult) -> None:
        start = parse_start_time(screening.start_time, self.tz)
        if start is None:
            result.errors.append("invalid_datetime: Datetime is invalid or missing")
            return

        local = start.astimezone(self.tz)

        if start < now:
            result.errors.append("past_screening: Screening is in the past")

        if local.hour < self.earliest_hour:
            result.errors.append(
                f"suspicious_time_early: Screening at {local:%H:%M} is before {self.earliest_hour}:00"
            )
        elif local.time() > time(self.latest_hour, 0):
            result.warnings.append(
                f"late_screening: Screening starts at {local:%H:%M} (after {self.latest_hour}:00)"
            )

        days_ahead = int((start - now).total_seconds() // SECONDS_PER_DAY)
        if days_ahead > self.horizon_days:
            result.errors.append(
                f"too_far_future: Screening is {days_ahead} days in future (max {self.horizon_days})"
            )

        key = (local.month, local.day)
        if key in CLOSED_DATES:
            result.warnings.append(
                f"holiday_screening: Screening on {CLOSED_DATES[key]} - verify cinema is open"
            )
        if key in WARNING_DATES:
            result.warnings.append(
                f"possible_holiday: Screening on {WARNING_DATES[key]} - some cinemas may be closed"
            )

    def _check_booking_url(self, screening: RawScreening, result: ValidationResult) -> None:
        url = (screening.booking_url or "").strip()
        if not url:
            result.warnings.append("missing_booking_url: No booking URL provided")
            return

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            result.errors.append("invalid_booking_url: Booking URL must be an absolute http(s) URL")
        if _PLACEHOLDER_RE.search(url):
            result.errors.append("malformed_booking_url: Booking URL contains 'undefined' or 'null'")

    def validate_batch(self, screenings: list[RawScreening], now: datetime | None = None) -> ValidationReport:
        """
        Partition screenings into accepted and rejected, then dedupe the accepted set.

        Deduplication is by source-native id; the first occurrence wins and
        records without an id are always kept.
        """
        now = now or datetime.now(self.tz)
        accepted: list[RawScreening] = []
        rejected: list[RejectedScreening] = []
        errors_by_type: Counter[str] = Counter()
        warnings_by_type: Counter[str] = Counter()
        seen_ids: set[str] = set()
        duplicates = 0
        warning_count = 0

        for screening in screenings:
            result = self.validate(screening, now)
            errors_by_type.update(message_code(e) for e in result.errors)
            warnings_by_type.update(message_code(w) for w in result.warnings)
            warning_count += len(result.warnings)

            if not result.is_valid:
                rejected.append(RejectedScreening(screening, result.errors))
                logger.debug(f"Rejected '{screening.title}': {', '.join(result.errors)}")
                continue

            if result.warnings:
                logger.debug(f"'{screening.title}': {', '.join(result.warnings)}")

            if screening.source_id:
                if screening.source_id in seen_ids:
                    duplicates += 1
                    continue
                seen_ids.add(screening.source_id)
            accepted.append(screening)

        summary = ValidationSummary(
            total=len(screenings),
            valid=len(accepted),
            rejected=len(rejected),
            warnings=warning_count,
            duplicates=duplicates,
            errors_by_type=dict(errors_by_type),
            warnings_by_type=dict(warnings_by_type),
        )
        if rejected:
            logger.info(
                f"Validation: {summary.valid}/{summary.total} accepted, "
                f"{summary.rejected} rejected ({summary.errors_by_type})"
            )
        return ValidationReport(accepted=accepted, rejected=rejected, summary=summary)


def validate_screening(screening: RawScreening, now: datetime | None = None) -> ValidationResult:
    """Validate one screening with the configured defaults."""
    return ScreeningValidator().validate(screening, now)


def validate_screenings(screenings: list[RawScreening], now: datetime | None = None) -> ValidationReport:
    """Validate a batch with the configured defaults."""
    return ScreeningValidator().validate_batch(screenings, now)
