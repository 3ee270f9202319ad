"""Service layer for analytics operations.

Validates the query window, runs the three aggregation passes (revenue
series, cancelled series, product leaderboard) and shapes the result.

The passes are independent reads with no shared transaction: under
concurrent writes the response reflects read time per pass, not one
snapshot.
"""

from __future__ import annotations

import calendar
from collections.abc import Callable, Iterator
from datetime import UTC, date, datetime, time
from typing import Any

from app.core.config import Settings, get_settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.core.problem_details import ERROR_TYPES
from app.features.analytics.exporter import CSVExporter
from app.features.analytics.mapper import build_analytics_response
from app.features.analytics.periods import create_period_strategy
from app.features.analytics.repository import AnalyticsRepositoryProtocol
from app.features.analytics.schemas import AnalyticsQuery, AnalyticsResponse, CSVExportRequest
from app.features.orders.models import CANCELLED_STATUSES, REVENUE_STATUSES

logger = get_logger(__name__)

END_OF_DAY = time(23, 59, 59, 999000)


# =============================================================================
# Query Errors
# =============================================================================


class AnalyticsQueryError(BadRequestError):
    """Analytics query rejected before any data access."""


class RangeExceededError(AnalyticsQueryError):
    """Query window is longer than the configured maximum."""

    error_type_uri: str = ERROR_TYPES["RANGE_EXCEEDED"]

    def __init__(self, max_months: int, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=f"Date range exceeds the maximum allowed ({max_months} months)",
            code="RANGE_EXCEEDED",
            details=details,
        )


class FutureDateError(AnalyticsQueryError):
    """Query window starts or ends after today (UTC)."""

    error_type_uri: str = ERROR_TYPES["FUTURE_DATE_NOT_ALLOWED"]

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message="Future dates are not allowed in the analysis range",
            code="FUTURE_DATE_NOT_ALLOWED",
            details=details,
        )


class InvalidDateRangeError(AnalyticsQueryError):
    """Query window starts after it ends."""

    error_type_uri: str = ERROR_TYPES["INVALID_DATE_RANGE"]

    def __init__(self, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message="Start date cannot be after end date",
            code="INVALID_DATE_RANGE",
            details=details,
        )


# =============================================================================
# Window Helpers
# =============================================================================


def add_months(d: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping to the month's last day."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def normalize_window(from_date: date, to_date: date) -> tuple[datetime, datetime]:
    """Widen calendar dates to inclusive UTC day boundaries.

    Returns:
        ``(from 00:00:00.000, to 23:59:59.999)`` as aware UTC datetimes.
    """
    start = datetime.combine(from_date, time.min, tzinfo=UTC)
    end = datetime.combine(to_date, END_OF_DAY, tzinfo=UTC)
    return start, end


def _utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Service
# =============================================================================


class AnalyticsService:
    """Service for computing time-bucketed order analytics.

    The repository is injected so the service can run against the
    SQLAlchemy implementation or an in-memory fake.
    """

    def __init__(
        self,
        repository: AnalyticsRepositoryProtocol,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize analytics service.

        Args:
            repository: Aggregation queries against the order store.
            settings: Application settings (defaults to the cached singleton).
            clock: Returns the current time; used for the future-date check.
        """
        self.repository = repository
        self.settings = settings or get_settings()
        self.clock = clock

    def validate_query(self, query: AnalyticsQuery) -> tuple[datetime, datetime]:
        """Validate the query window and return it as UTC bounds.

        Checks run in order: future dates, inverted range, maximum span.

        Args:
            query: Analytics query.

        Returns:
            Inclusive ``(start, end)`` datetimes in UTC.

        Raises:
            FutureDateError: ``from`` or ``to`` is after today (UTC).
            InvalidDateRangeError: ``from`` is after ``to``.
            RangeExceededError: The span exceeds ``analytics_max_range_months``.
        """
        today = self.clock().astimezone(UTC).date()
        details = {"from": str(query.from_date), "to": str(query.to_date)}

        if query.from_date > today or query.to_date > today:
            logger.warning("analytics.range_rejected", reason="future_date", **details)
            raise FutureDateError(details=details)

        if query.from_date > query.to_date:
            logger.warning("analytics.range_rejected", reason="inverted_range", **details)
            raise InvalidDateRangeError(details=details)

        max_months = self.settings.analytics_max_range_months
        if query.to_date >= add_months(query.from_date, max_months):
            logger.warning(
                "analytics.range_rejected",
                reason="range_exceeded",
                max_months=max_months,
                **details,
            )
            raise RangeExceededError(max_months=max_months, details=details)

        return normalize_window(query.from_date, query.to_date)

    async def compute_analytics(self, query: AnalyticsQuery) -> AnalyticsResponse | None:
        """Compute series, cancelled series and top products for a window.

        Args:
            query: Analytics query.

        Returns:
            The shaped response, or None when the window holds neither
            revenue-generating nor cancelled orders.

        Raises:
            AnalyticsQueryError: If the window is invalid (no data is read).
        """
        start, end = self.validate_query(query)
        strategy = create_period_strategy(query.group_by)
        top = query.top or self.settings.analytics_default_top

        series = await self.repository.fetch_period_totals(
            start, end, REVENUE_STATUSES, strategy
        )
        cancelled_series = await self.repository.fetch_period_totals(
            start, end, CANCELLED_STATUSES, strategy
        )

        if not series and not cancelled_series:
            logger.info(
                "analytics.no_data",
                from_date=str(query.from_date),
                to_date=str(query.to_date),
                group_by=strategy.granularity.value,
            )
            return None

        products = (
            await self.repository.fetch_top_products(start, end, REVENUE_STATUSES, top)
            if series
            else []
        )

        response = build_analytics_response(series, cancelled_series, products, query)

        logger.info(
            "analytics.computed",
            from_date=str(query.from_date),
            to_date=str(query.to_date),
            group_by=strategy.granularity.value,
            top=top,
            buckets=len(series),
            cancelled_buckets=len(cancelled_series),
            order_count=response.summary.order_count,
            revenue=float(response.summary.revenue),
        )

        return response

    async def export_csv(
        self,
        request: CSVExportRequest,
        exporter: CSVExporter | None = None,
    ) -> Iterator[str]:
        """Compute analytics and return the CSV chunk iterator.

        Validation and data access happen here, before the first chunk is
        produced, so query errors still surface as regular error responses.

        Args:
            request: Export request.
            exporter: CSV exporter (defaults to the configured delimiter).

        Returns:
            Iterator over CSV text chunks.
        """
        analytics = await self.compute_analytics(request)
        return (exporter or CSVExporter()).iter_csv(analytics, request)
