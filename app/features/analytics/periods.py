"""Period bucketing strategies for time-series analytics.

A strategy maps an order timestamp to a bucket key and exposes the SQL
expression that produces the same key inside the database. Both sides must
agree exactly: the repository groups with the SQL expression while tests and
in-memory readers use ``format``.

Bucket keys sort lexicographically in chronological order:
- day   -> ``YYYY-MM-DD``
- week  -> ``IYYY-IW`` (ISO-8601 week-numbering year and week)
- month -> ``YYYY-MM``
- year  -> ``YYYY``
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import ColumnElement, func, literal_column


class TimeGranularity(str, Enum):
    """Time granularity for period buckets."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def _as_utc(ts: datetime) -> datetime:
    # Naive timestamps are stored as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _format_day(ts: datetime) -> str:
    return f"{ts.year:04d}-{ts.month:02d}-{ts.day:02d}"


def _format_week(ts: datetime) -> str:
    iso = ts.isocalendar()
    return f"{iso.year:04d}-{iso.week:02d}"


def _format_month(ts: datetime) -> str:
    return f"{ts.year:04d}-{ts.month:02d}"


def _format_year(ts: datetime) -> str:
    return f"{ts.year:04d}"


# PostgreSQL to_char patterns paired with the equivalent Python formatter.
_PATTERNS: dict[TimeGranularity, tuple[str, Callable[[datetime], str]]] = {
    TimeGranularity.DAY: ("YYYY-MM-DD", _format_day),
    TimeGranularity.WEEK: ("IYYY-IW", _format_week),
    TimeGranularity.MONTH: ("YYYY-MM", _format_month),
    TimeGranularity.YEAR: ("YYYY", _format_year),
}


@dataclass(frozen=True)
class PeriodStrategy:
    """Stateless bucketing strategy for one granularity.

    Attributes:
        granularity: The granularity tag this strategy implements.
        sql_pattern: PostgreSQL ``to_char`` pattern producing the bucket key.
    """

    granularity: TimeGranularity
    sql_pattern: str

    def format(self, ts: datetime) -> str:
        """Format a timestamp as this strategy's bucket key (UTC)."""
        _, formatter = _PATTERNS[self.granularity]
        return formatter(_as_utc(ts))

    def period_expression(self, column: Any) -> ColumnElement[str]:
        """Build the SQL bucket-key expression for a timestamptz column.

        The column is shifted to UTC first so the key does not depend on the
        session time zone. Constants are inlined so that SELECT and GROUP BY
        render the identical expression.

        Args:
            column: Timestamp column or expression.

        Returns:
            SQL expression yielding the bucket key as text.
        """
        return func.to_char(
            func.timezone(literal_column("'UTC'"), column),
            literal_column(f"'{self.sql_pattern}'"),
        )


def create_period_strategy(group_by: TimeGranularity | str | None) -> PeriodStrategy:
    """Create the strategy for a granularity tag.

    Unknown or missing tags fall back to ``month`` instead of failing.

    Args:
        group_by: Granularity tag (enum member or raw string).

    Returns:
        A fresh, stateless period strategy.
    """
    try:
        granularity = TimeGranularity(group_by)
    except (ValueError, TypeError):
        granularity = TimeGranularity.MONTH

    sql_pattern, _ = _PATTERNS[granularity]
    return PeriodStrategy(granularity=granularity, sql_pattern=sql_pattern)
