"""Shape raw aggregate rows into the public analytics response.

Pure functions, no I/O. Monetary values are rounded half away from zero to
exactly two decimals: once per series point and once on the summary, where
the summary is summed from the unrounded folds.
"""

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from app.features.analytics.repository import PeriodTotals, ProductTotals
from app.features.analytics.schemas import (
    AnalyticsQuery,
    AnalyticsResponse,
    AnalyticsSummary,
    CancelledSeriesPoint,
    DateRange,
    ProductSold,
    SeriesPoint,
)

CENT = Decimal("0.01")


def round_money(value: Decimal | int | float) -> Decimal:
    """Round a monetary amount to two decimals, half away from zero."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def map_products(products: Sequence[ProductTotals]) -> list[ProductSold]:
    """Map leaderboard rows to response entries, preserving their order."""
    return [
        ProductSold(
            product_id=p.product_key,
            name=p.name,
            quantity=p.quantity,
            revenue=round_money(p.revenue),
        )
        for p in products
    ]


def build_analytics_response(
    series: Sequence[PeriodTotals],
    cancelled_series: Sequence[PeriodTotals],
    products: Sequence[ProductTotals],
    query: AnalyticsQuery,
) -> AnalyticsResponse:
    """Build the analytics response from the three aggregation results.

    Args:
        series: Revenue-generating folds, ascending by period.
        cancelled_series: Cancelled folds, ascending by period.
        products: Leaderboard rows, already truncated to ``top``.
        query: The originating query (echoed as ``range``).

    Returns:
        Immutable analytics response.
    """
    summary = AnalyticsSummary(
        order_count=sum(s.order_count for s in series),
        revenue=round_money(sum((s.revenue for s in series), Decimal(0))),
        avg_prep_time=None,
        cancelled_count=sum(c.order_count for c in cancelled_series),
        lost_revenue=round_money(sum((c.revenue for c in cancelled_series), Decimal(0))),
    )

    products_sold = map_products(products)

    return AnalyticsResponse(
        range=DateRange(
            from_date=query.from_date,
            to_date=query.to_date,
            group_by=query.group_by,
        ),
        summary=summary,
        series=[
            SeriesPoint(
                period=s.period,
                order_count=s.order_count,
                revenue=round_money(s.revenue),
                avg_prep_time=None,
            )
            for s in series
        ],
        cancelled_series=[
            CancelledSeriesPoint(
                period=c.period,
                cancelled_count=c.order_count,
                lost_revenue=round_money(c.revenue),
            )
            for c in cancelled_series
        ],
        products_sold=products_sold,
        # Same entries: truncation to ``top`` already happened in the query
        top_n_products=list(products_sold),
        message=None,
    )
