"""Health report: check every active cinema for scraping anomalies."""

import argparse
import asyncio
import sys

from cinewatch.config import settings
from cinewatch.database import AsyncSessionLocal
from cinewatch.services.anomaly import ANOMALY, HEALTHY, AnomalyDetector, HealthReport

_STATUS_MARKS = {HEALTHY: "✓", ANOMALY: "✗"}


async def run_health_report(budget_seconds: float) -> HealthReport:
    """Check all active cinemas and return the report."""
    async with AsyncSessionLocal() as db:
        report = await AnomalyDetector(db).check_all(budget_seconds)
        await db.commit()
    return report


def print_report(report: HealthReport) -> None:
    print(f"Health check at {report.checked_at:%Y-%m-%d %H:%M} UTC\n")
    for r in report.results:
        mark = _STATUS_MARKS.get(r.status, "?")
        count = "-" if r.today_count is None else str(r.today_count)
        kind = r.anomaly_type.value if r.anomaly_type else r.status
        blocked = "  BLOCKED" if r.should_block_scrape else ""
        print(f"  {mark}  {r.cinema_name:<45} {count:>5}  {kind}{blocked}")
        for warning in r.warnings:
            print(f"       {warning}")

    print()
    print(
        f"{report.healthy} healthy, {report.anomalies} anomalies, "
        f"{report.blocked} blocked, {report.unknown} unknown"
    )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Check every active cinema's latest scrape against its baseline."
    )
    parser.add_argument(
        "--budget",
        type=float,
        default=settings.health_check_budget_seconds,
        metavar="SECONDS",
        help=f"Overall time budget (default: {settings.health_check_budget_seconds:g})",
    )
    args = parser.parse_args()

    report = asyncio.run(run_health_report(args.budget))
    print_report(report)
    sys.exit(1 if report.blocked else 0)


if __name__ == "__main__":
    main()
