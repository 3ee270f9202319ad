"""Tests for the analytics response mapper."""

from datetime import date
from decimal import Decimal

import pytest

from app.features.analytics.mapper import build_analytics_response, round_money
from app.features.analytics.periods import TimeGranularity
from app.features.analytics.repository import PeriodTotals, ProductTotals
from app.features.analytics.schemas import AnalyticsQuery


@pytest.fixture
def query() -> AnalyticsQuery:
    return AnalyticsQuery(from_date=date(2025, 1, 1), to_date=date(2025, 3, 31), group_by="month")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (Decimal("0.005"), Decimal("0.01")),
        (Decimal("2.675"), Decimal("2.68")),
        (Decimal("-1.005"), Decimal("-1.01")),
        (Decimal("10"), Decimal("10.00")),
        (0.1 + 0.2, Decimal("0.30")),
    ],
)
def test_round_money_half_away_from_zero(value, expected):
    """Money rounds half away from zero to exactly two decimals."""
    assert round_money(value) == expected
    assert round_money(value).as_tuple().exponent == -2


def test_summary_sums_unrounded_series(query):
    """Summary is rounded once from the unrounded folds."""
    series = [
        PeriodTotals(period="2025-01", order_count=1, revenue=Decimal("0.004")),
        PeriodTotals(period="2025-02", order_count=2, revenue=Decimal("0.004")),
    ]
    response = build_analytics_response(series, [], [], query)

    assert [s.revenue for s in response.series] == [Decimal("0.00"), Decimal("0.00")]
    assert response.summary.revenue == Decimal("0.01")
    assert response.summary.order_count == 3


def test_cancelled_totals_come_from_cancelled_series(query):
    """Cancelled count and lost revenue sum only the cancelled series."""
    series = [PeriodTotals(period="2025-01", order_count=4, revenue=Decimal("100"))]
    cancelled = [
        PeriodTotals(period="2025-01", order_count=1, revenue=Decimal("12.345")),
        PeriodTotals(period="2025-03", order_count=2, revenue=Decimal("7.5")),
    ]
    response = build_analytics_response(series, cancelled, [], query)

    assert response.summary.cancelled_count == 3
    assert response.summary.lost_revenue == Decimal("19.85")
    assert [(c.period, c.lost_revenue) for c in response.cancelled_series] == [
        ("2025-01", Decimal("12.35")),
        ("2025-03", Decimal("7.50")),
    ]


def test_top_n_products_copies_products_sold(query):
    """Top products mirror the already truncated leaderboard."""
    products = [
        ProductTotals(product_key="P1", name="Pizza", quantity=5, revenue=Decimal("50")),
        ProductTotals(product_key="Soda", name="Soda", quantity=2, revenue=Decimal("4.999")),
    ]
    response = build_analytics_response(
        [PeriodTotals(period="2025-01", order_count=1, revenue=Decimal("55"))], [], products, query
    )

    assert response.top_n_products == response.products_sold
    assert response.top_n_products is not response.products_sold
    assert response.products_sold[1].revenue == Decimal("5.00")


def test_range_echoes_query(query):
    """Range carries the query dates and granularity."""
    response = build_analytics_response([], [], [], query)

    assert response.range.from_date == date(2025, 1, 1)
    assert response.range.group_by == TimeGranularity.MONTH
    assert response.message is None


def test_json_uses_aliases_and_numbers(query):
    """JSON output uses ``from``/``to`` and renders money as numbers."""
    response = build_analytics_response(
        [PeriodTotals(period="2025-01", order_count=1, revenue=Decimal("40"))], [], [], query
    )
    payload = response.model_dump(mode="json", by_alias=True)

    assert payload["range"] == {"from": "2025-01-01", "to": "2025-03-31", "group_by": "month"}
    assert payload["summary"]["revenue"] == 40.0
    assert payload["summary"]["avg_prep_time"] is None
    assert payload["series"][0]["avg_prep_time"] is None
