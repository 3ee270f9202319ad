"""Pydantic schemas for analytics endpoints.

Queries, the shaped analytics response, CSV export requests and the
consistency-audit payloads. Monetary values are ``Decimal`` in Python and
render as JSON numbers with two decimals.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

from app.features.analytics.periods import TimeGranularity

Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

# =============================================================================
# Query Schemas
# =============================================================================


class AnalyticsQuery(BaseModel):
    """Analytics query over an inclusive calendar-date window.

    ``from``/``to`` are calendar dates; the service widens them to
    ``[from 00:00:00.000, to 23:59:59.999]`` UTC before querying.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_date: date = Field(
        ...,
        alias="from",
        description="Start of the analysis window (inclusive). Format: YYYY-MM-DD.",
    )
    to_date: date = Field(
        ...,
        alias="to",
        description="End of the analysis window (inclusive). Format: YYYY-MM-DD.",
    )
    group_by: TimeGranularity = Field(
        TimeGranularity.MONTH,
        description="Bucket granularity: day, week, month or year. "
        "Unrecognised values fall back to month.",
    )
    top: int | None = Field(
        None,
        ge=1,
        le=100,
        description="Size of the top products leaderboard (default 10).",
    )

    @field_validator("group_by", mode="before")
    @classmethod
    def fallback_group_by(cls, v: Any) -> TimeGranularity:
        """Coerce unknown granularity tags to month."""
        try:
            return TimeGranularity(v)
        except (ValueError, TypeError):
            return TimeGranularity.MONTH


class CSVColumn(str, Enum):
    """Columns available in the CSV export."""

    PERIOD = "period"
    ORDER_COUNT = "order_count"
    CANCELLED_COUNT = "cancelled_count"
    REVENUE = "revenue"
    LOST_REVENUE = "lost_revenue"
    AVG_PREP_TIME = "avg_prep_time"
    PRODUCT_ID = "product_id"
    PRODUCT_NAME = "product_name"
    QUANTITY = "quantity"
    PRODUCT_REVENUE = "product_revenue"


DEFAULT_CSV_COLUMNS: tuple[CSVColumn, ...] = (
    CSVColumn.PERIOD,
    CSVColumn.ORDER_COUNT,
    CSVColumn.CANCELLED_COUNT,
    CSVColumn.REVENUE,
    CSVColumn.LOST_REVENUE,
)

PRODUCT_CSV_COLUMNS: frozenset[CSVColumn] = frozenset(
    {
        CSVColumn.PRODUCT_ID,
        CSVColumn.PRODUCT_NAME,
        CSVColumn.QUANTITY,
        CSVColumn.PRODUCT_REVENUE,
    }
)


class CSVExportRequest(AnalyticsQuery):
    """Analytics query plus the ordered CSV column selection."""

    columns: list[CSVColumn] | None = Field(
        None,
        description="Ordered list of columns. Empty or missing uses "
        "period, order_count, cancelled_count, revenue, lost_revenue. "
        "Selecting any product column yields one row per (period, product).",
    )

    def resolved_columns(self) -> list[CSVColumn]:
        """Return the requested columns, or the defaults when none were given."""
        return list(self.columns) if self.columns else list(DEFAULT_CSV_COLUMNS)


# =============================================================================
# Response Schemas
# =============================================================================


class DateRange(BaseModel):
    """Queried window echoed back to the client."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    from_date: date = Field(..., alias="from")
    to_date: date = Field(..., alias="to")
    group_by: TimeGranularity


class SeriesPoint(BaseModel):
    """Fulfilled-order metrics for one period bucket."""

    model_config = ConfigDict(frozen=True)

    period: str = Field(..., description="Bucket key (e.g. 2025-11).")
    order_count: int = Field(..., ge=0, description="Distinct revenue-generating orders.")
    revenue: Money = Field(..., description="Sum of quantity x unit price, 2 decimals.")
    avg_prep_time: float | None = Field(
        None,
        description="Average preparation time. Always null: not instrumented yet.",
    )


class CancelledSeriesPoint(BaseModel):
    """Cancelled-order metrics for one period bucket."""

    model_config = ConfigDict(frozen=True)

    period: str
    cancelled_count: int = Field(..., ge=0)
    lost_revenue: Money


class ProductSold(BaseModel):
    """Leaderboard entry ranked by quantity sold."""

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(..., description="Catalogue id, or the item name when absent.")
    name: str
    quantity: int = Field(..., ge=0)
    revenue: Money


class AnalyticsSummary(BaseModel):
    """Rollup of the revenue and cancelled series."""

    model_config = ConfigDict(frozen=True)

    order_count: int = Field(..., ge=0)
    revenue: Money
    avg_prep_time: float | None = None
    cancelled_count: int = Field(..., ge=0)
    lost_revenue: Money


class AnalyticsResponse(BaseModel):
    """Shaped analytics response for one query."""

    model_config = ConfigDict(frozen=True)

    range: DateRange
    summary: AnalyticsSummary
    series: list[SeriesPoint]
    cancelled_series: list[CancelledSeriesPoint]
    products_sold: list[ProductSold]
    top_n_products: list[ProductSold]
    message: str | None = None


# =============================================================================
# Consistency Audit Schemas
# =============================================================================


class AuditMetric(str, Enum):
    """Headline metrics cross-checked by the auditor."""

    FULFILLED_ORDER_COUNT = "fulfilled_order_count"
    CANCELLED_ORDER_COUNT = "cancelled_order_count"
    TOTAL_REVENUE = "total_revenue"
    LOST_REVENUE = "lost_revenue"


class DiscrepancySeverity(str, Enum):
    """How far a reported metric deviates from the recomputed value."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Discrepancy(BaseModel):
    """A reported metric that differs from its independently recomputed value."""

    model_config = ConfigDict(frozen=True)

    metric: AuditMetric
    reported_value: Money
    actual_value: Money
    percent_difference: Money | None = Field(
        ...,
        description="|reported - actual| / actual x 100, 2 decimals. "
        "Null when actual is zero and reported is not.",
    )
    severity: DiscrepancySeverity


class AuditResult(BaseModel):
    """Outcome of one consistency audit."""

    is_valid: bool
    discrepancies: list[Discrepancy]
    timestamp: datetime
    date_range: DateRange
    unrecognized_status_count: int = Field(
        0,
        ge=0,
        description="Orders in the window whose status is not a known lifecycle state.",
    )


class AuditAlert(BaseModel):
    """Payload emitted when an audit finds a CRITICAL discrepancy."""

    type: Literal["ANALYTICS_VALIDATION_FAILURE"] = "ANALYTICS_VALIDATION_FAILURE"
    timestamp: datetime
    date_range: DateRange
    discrepancies: list[Discrepancy]
    critical_discrepancies: list[Discrepancy]
    total_discrepancies: int
    message: str
    action_required: str


class AuditResponse(BaseModel):
    """HTTP response for the audit endpoint."""

    success: bool
    message: str
    discrepancies: list[Discrepancy]
    timestamp: datetime
    date_range: DateRange
    unrecognized_status_count: int = 0
