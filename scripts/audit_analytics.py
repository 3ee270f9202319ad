#!/usr/bin/env python
"""Analytics consistency audit CLI.

Recomputes the headline analytics metrics straight from the order store and
compares them with the analytics report. Exits with status 1 when the audit
fails, so it can run from cron or a CI schedule.

Usage:
    # Trailing window (default: AUDIT_WINDOW_DAYS, daily grouping)
    uv run python scripts/audit_analytics.py

    # Last 7 days
    uv run python scripts/audit_analytics.py --days 7

    # Explicit window
    uv run python scripts/audit_analytics.py --from 2025-11-01 --to 2025-12-31 --group-by month
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date

from app.core.config import get_settings
from app.core.database import get_engine, get_session_maker
from app.core.exceptions import OrderInsightError
from app.core.logging import configure_logging
from app.features.analytics.audit import ConsistencyAuditor, OrderLedger
from app.features.analytics.periods import TimeGranularity
from app.features.analytics.repository import AnalyticsRepository
from app.features.analytics.schemas import AnalyticsQuery, AuditResult
from app.features.analytics.service import AnalyticsService


def parse_date(date_str: str) -> date:
    """Parse date string in YYYY-MM-DD format.

    Raises:
        argparse.ArgumentTypeError: If date format is invalid.
    """
    try:
        return date.fromisoformat(date_str)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date format: {date_str}. Use YYYY-MM-DD") from e


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="OrderInsight analytics consistency audit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scheduled run over the configured trailing window
  audit_analytics.py

  # Audit a specific quarter
  audit_analytics.py --from 2025-10-01 --to 2025-12-31
        """,
    )
    parser.add_argument(
        "--from",
        dest="from_date",
        type=parse_date,
        help="Start of the window (inclusive). Requires --to.",
    )
    parser.add_argument(
        "--to",
        dest="to_date",
        type=parse_date,
        help="End of the window (inclusive). Requires --from.",
    )
    parser.add_argument(
        "--group-by",
        choices=[g.value for g in TimeGranularity],
        default=TimeGranularity.DAY.value,
        help="Bucket granularity for an explicit window (default: day)",
    )
    parser.add_argument(
        "--days",
        type=int,
        help="Trailing window length in days (default: AUDIT_WINDOW_DAYS)",
    )
    return parser


def print_result(result: AuditResult) -> None:
    """Print a human-readable audit summary."""
    window = f"{result.date_range.from_date} -> {result.date_range.to_date}"
    print(f"Window:  {window} ({result.date_range.group_by.value})")
    print(f"Status:  {'PASS' if result.is_valid else 'FAIL'}")
    print(f"Checked: {result.timestamp.isoformat()}")

    if result.unrecognized_status_count:
        print(f"[WARN] {result.unrecognized_status_count} orders with unrecognized status")

    if not result.discrepancies:
        print("No discrepancies found.")
        return

    print()
    print(f"{'Metric':<24} {'Reported':>14} {'Actual':>14} {'Diff %':>9}  Severity")
    print("-" * 72)
    for d in result.discrepancies:
        pct = "n/a" if d.percent_difference is None else f"{d.percent_difference:.2f}"
        print(
            f"{d.metric.value:<24} {d.reported_value:>14} {d.actual_value:>14} "
            f"{pct:>9}  {d.severity.value}"
        )


async def run_audit(args: argparse.Namespace) -> int:
    """Run the audit against the configured database."""
    async with get_session_maker()() as session:
        service = AnalyticsService(AnalyticsRepository(session))
        auditor = ConsistencyAuditor(OrderLedger(session), service)

        if args.from_date and args.to_date:
            query = AnalyticsQuery(
                from_date=args.from_date,
                to_date=args.to_date,
                group_by=args.group_by,
            )
            result = await auditor.audit(query)
        else:
            result = await auditor.run_scheduled_audit(days=args.days)

    print_result(result)
    return 0 if result.is_valid else 1


async def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if (args.from_date is None) != (args.to_date is None):
        parser.error("--from and --to must be given together")
    if args.days is not None and args.days < 1:
        parser.error("--days must be at least 1")

    configure_logging()
    print(f"{get_settings().app_name} - Analytics Consistency Audit")
    print("=" * 45)

    try:
        return await run_audit(args)
    except OrderInsightError as e:
        print(f"[FAIL] {e.code}: {e.message}")
        return 1
    finally:
        await get_engine().dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
