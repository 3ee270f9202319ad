"""Tests for the analytics service."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from app.features.analytics.schemas import AnalyticsQuery, CSVExportRequest
from app.features.analytics.service import (
    FutureDateError,
    InvalidDateRangeError,
    RangeExceededError,
    add_months,
    normalize_window,
)


def _query(from_date, to_date, **kwargs) -> AnalyticsQuery:
    return AnalyticsQuery(from_date=from_date, to_date=to_date, **kwargs)


class TestWindowHelpers:
    """Tests for window helpers."""

    def test_normalize_window_covers_whole_days(self):
        """Window spans from midnight to the last millisecond, UTC."""
        start, end = normalize_window(date(2025, 11, 1), date(2025, 11, 30))

        assert start == datetime(2025, 11, 1, 0, 0, 0, tzinfo=UTC)
        assert end == datetime(2025, 11, 30, 23, 59, 59, 999000, tzinfo=UTC)

    @pytest.mark.parametrize(
        ("start", "months", "expected"),
        [
            (date(2025, 1, 31), 1, date(2025, 2, 28)),
            (date(2024, 1, 31), 1, date(2024, 2, 29)),
            (date(2025, 11, 15), 2, date(2026, 1, 15)),
            (date(2014, 1, 1), 120, date(2024, 1, 1)),
        ],
    )
    def test_add_months(self, start, months, expected):
        """Month shift clamps to the target month's last day."""
        assert add_months(start, months) == expected


class TestComputeAnalytics:
    """Tests for AnalyticsService.compute_analytics."""

    @pytest.mark.asyncio
    async def test_monthly_series(self, service, nov_dec_query):
        """Two months of fulfilled orders produce two ascending points."""
        response = await service.compute_analytics(nov_dec_query)

        assert response is not None
        assert [(s.period, s.order_count, s.revenue) for s in response.series] == [
            ("2025-11", 2, Decimal("40.00")),
            ("2025-12", 1, Decimal("18.00")),
        ]
        assert response.summary.order_count == 3
        assert response.summary.revenue == Decimal("58.00")

    @pytest.mark.asyncio
    async def test_cancelled_series_is_separate(self, service, nov_dec_query):
        """Cancelled orders appear only in the cancelled series."""
        response = await service.compute_analytics(nov_dec_query)

        assert [(c.period, c.cancelled_count, c.lost_revenue) for c in response.cancelled_series] == [
            ("2025-12", 1, Decimal("25.00"))
        ]
        assert response.summary.cancelled_count == 1
        assert response.summary.lost_revenue == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_products_ranked_by_quantity(self, service, nov_dec_query):
        """Leaderboard is ordered by quantity and keyed by id or name."""
        response = await service.compute_analytics(nov_dec_query)

        assert [(p.product_id, p.quantity, p.revenue) for p in response.products_sold] == [
            ("Soda", 8, Decimal("16.00")),
            ("P1", 3, Decimal("30.00")),
            ("P2", 1, Decimal("12.00")),
        ]
        assert response.top_n_products == response.products_sold

    @pytest.mark.asyncio
    async def test_top_truncates_leaderboard(self, service):
        """Leaderboard is truncated to ``top`` entries."""
        response = await service.compute_analytics(
            _query(date(2025, 11, 1), date(2025, 12, 31), top=1)
        )
        assert [p.product_id for p in response.products_sold] == ["Soda"]

    @pytest.mark.asyncio
    async def test_avg_prep_time_is_null(self, service, nov_dec_query):
        """Preparation time is not instrumented and stays null."""
        response = await service.compute_analytics(nov_dec_query)

        assert response.summary.avg_prep_time is None
        assert all(s.avg_prep_time is None for s in response.series)

    @pytest.mark.asyncio
    async def test_no_data_returns_none(self, service, repository):
        """A window without relevant orders returns None and skips the leaderboard."""
        response = await service.compute_analytics(
            _query(date(2025, 1, 1), date(2025, 1, 31))
        )

        assert response is None
        assert "top_products" not in repository.calls

    @pytest.mark.asyncio
    async def test_only_cancelled_skips_leaderboard(self, service, repository):
        """With only cancelled orders the response exists but has no products."""
        response = await service.compute_analytics(
            _query(date(2025, 12, 10), date(2025, 12, 10), group_by="day")
        )

        assert response is not None
        assert response.series == []
        assert response.products_sold == []
        assert response.summary.cancelled_count == 1
        assert "top_products" not in repository.calls

    @pytest.mark.asyncio
    async def test_unknown_group_by_uses_month(self, service):
        """Unrecognised granularity falls back to month buckets."""
        response = await service.compute_analytics(
            _query(date(2025, 11, 1), date(2025, 12, 31), group_by="fortnight")
        )
        assert [s.period for s in response.series] == ["2025-11", "2025-12"]

    @pytest.mark.asyncio
    async def test_week_grouping(self, service):
        """Week grouping uses ISO week keys."""
        response = await service.compute_analytics(
            _query(date(2025, 11, 1), date(2025, 12, 31), group_by="week")
        )
        assert [s.period for s in response.series] == ["2025-45", "2025-47", "2025-49"]


class TestValidation:
    """Tests for query window validation."""

    @pytest.mark.asyncio
    async def test_exact_maximum_window_is_accepted(self, make_service):
        """A window of exactly the maximum span is valid."""
        service, _ = make_service(120)
        response = await service.compute_analytics(
            _query(date(2016, 1, 1), date(2025, 12, 31))
        )
        assert response is not None

    @pytest.mark.asyncio
    async def test_one_day_beyond_maximum_is_rejected(self, make_service):
        """One day past the maximum span fails before any data access."""
        service, repository = make_service(120)

        with pytest.raises(RangeExceededError) as exc_info:
            await service.compute_analytics(_query(date(2016, 1, 1), date(2026, 1, 1)))

        assert exc_info.value.code == "RANGE_EXCEEDED"
        assert exc_info.value.status_code == 400
        assert "120 months" in exc_info.value.message
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_baseline_twelve_month_policy(self, make_service):
        """The maximum span follows configuration."""
        service, _ = make_service(12)

        await service.compute_analytics(_query(date(2025, 1, 1), date(2025, 12, 31)))
        with pytest.raises(RangeExceededError):
            await service.compute_analytics(_query(date(2025, 1, 1), date(2026, 1, 1)))

    @pytest.mark.asyncio
    async def test_future_end_date_rejected(self, service, repository):
        """An end date after today is rejected."""
        with pytest.raises(FutureDateError) as exc_info:
            await service.compute_analytics(_query(date(2026, 1, 1), date(2026, 1, 16)))

        assert exc_info.value.code == "FUTURE_DATE_NOT_ALLOWED"
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_today_is_not_future(self, service):
        """Today (UTC) is a valid end date."""
        await service.compute_analytics(_query(date(2026, 1, 1), date(2026, 1, 15)))

    @pytest.mark.asyncio
    async def test_inverted_range_rejected(self, service, repository):
        """``from`` after ``to`` is rejected."""
        with pytest.raises(InvalidDateRangeError) as exc_info:
            await service.compute_analytics(_query(date(2025, 12, 31), date(2025, 11, 1)))

        assert exc_info.value.code == "INVALID_DATE_RANGE"
        assert repository.calls == []

    @pytest.mark.asyncio
    async def test_future_check_runs_before_order_check(self, service):
        """A future, inverted window reports the future date first."""
        with pytest.raises(FutureDateError):
            await service.compute_analytics(_query(date(2026, 3, 1), date(2026, 1, 1)))


class TestExportCsv:
    """Tests for AnalyticsService.export_csv."""

    @pytest.mark.asyncio
    async def test_validation_happens_before_streaming(self, service):
        """Invalid windows raise instead of producing a fallback stream."""
        with pytest.raises(InvalidDateRangeError):
            await service.export_csv(
                CSVExportRequest(from_date=date(2025, 12, 1), to_date=date(2025, 11, 1))
            )
