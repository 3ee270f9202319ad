"""API routes for analytics endpoints.

Time-bucketed order analytics, CSV export and the consistency audit.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.features.analytics.audit import ConsistencyAuditor, OrderLedger
from app.features.analytics.periods import TimeGranularity
from app.features.analytics.repository import AnalyticsRepository
from app.features.analytics.schemas import (
    AnalyticsQuery,
    AnalyticsResponse,
    AuditResponse,
    CSVExportRequest,
)
from app.features.analytics.service import AnalyticsService

logger = get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


# =============================================================================
# Dependencies
# =============================================================================


def get_analytics_service(db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    """Build the analytics service for the request session."""
    return AnalyticsService(AnalyticsRepository(db))


def get_consistency_auditor(
    db: AsyncSession = Depends(get_db),
    service: AnalyticsService = Depends(get_analytics_service),
) -> ConsistencyAuditor:
    """Build the consistency auditor for the request session."""
    return ConsistencyAuditor(OrderLedger(db), service)


# =============================================================================
# Analytics Endpoints
# =============================================================================


@router.get(
    "",
    response_model=AnalyticsResponse,
    summary="Compute order analytics",
    responses={204: {"description": "No orders in the requested window."}},
    description="""
Compute time-bucketed order analytics for an inclusive date window.

**Metrics**:
- `series`: orders and revenue per period for ready/completed/delivered orders
- `cancelled_series`: cancelled orders and lost revenue per period
- `products_sold` / `top_n_products`: leaderboard by quantity sold
- `summary`: totals over both series (money rounded to 2 decimals)

**Grouping** (`group_by`): `day` (YYYY-MM-DD), `week` (ISO IYYY-IW),
`month` (YYYY-MM, default), `year` (YYYY). Unknown values use `month`.

**Errors** (400): `FUTURE_DATE_NOT_ALLOWED`, `INVALID_DATE_RANGE`,
`RANGE_EXCEEDED`.

Returns **204 No Content** when the window holds no relevant orders.

**Example**: `GET /analytics?from=2025-11-01&to=2025-12-31&group_by=month&top=5`
""",
)
async def get_analytics(
    from_date: date = Query(
        ...,
        alias="from",
        description="Start of the analysis window (inclusive). Format: YYYY-MM-DD.",
    ),
    to_date: date = Query(
        ...,
        alias="to",
        description="End of the analysis window (inclusive). Format: YYYY-MM-DD.",
    ),
    group_by: str = Query(
        TimeGranularity.MONTH.value,
        description="Bucket granularity: day, week, month or year.",
    ),
    top: int | None = Query(
        None,
        ge=1,
        le=100,
        description="Size of the top products leaderboard (default 10).",
    ),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsResponse | Response:
    """Compute analytics for a date window.

    Args:
        from_date: Start of the window (inclusive).
        to_date: End of the window (inclusive).
        group_by: Bucket granularity tag.
        top: Leaderboard size.
        service: Analytics service.

    Returns:
        Analytics response, or an empty 204 response when there is no data.
    """
    query = AnalyticsQuery(from_date=from_date, to_date=to_date, group_by=group_by, top=top)
    analytics = await service.compute_analytics(query)
    if analytics is None:
        return Response(status_code=204)
    return analytics


@router.post(
    "/export",
    response_class=StreamingResponse,
    summary="Export analytics as CSV",
    responses={200: {"content": {"text/csv": {}}}},
    description="""
Export analytics for a window as a spreadsheet-friendly CSV file.

**Format**: UTF-8 with BOM, `;`-delimited, every field double-quoted.

**Columns** (`columns`, ordered): `period`, `order_count`, `cancelled_count`,
`revenue`, `lost_revenue`, `avg_prep_time`, `product_id`, `product_name`,
`quantity`, `product_revenue`. Defaults to
`period, order_count, cancelled_count, revenue, lost_revenue`.
Selecting a product column yields one row per (period, product).

A window without data still returns a header and one placeholder row.
""",
)
async def export_analytics(
    request: CSVExportRequest,
    service: AnalyticsService = Depends(get_analytics_service),
) -> StreamingResponse:
    """Stream analytics as a CSV attachment.

    Args:
        request: Window, grouping and column selection.
        service: Analytics service.

    Returns:
        Streaming CSV response.
    """
    chunks = await service.export_csv(request)
    filename = f"analytics_{request.from_date.isoformat()}-{request.to_date.isoformat()}.csv"
    return StreamingResponse(
        chunks,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =============================================================================
# Audit Endpoints
# =============================================================================


@router.post(
    "/audit",
    response_model=AuditResponse,
    summary="Audit analytics consistency",
    description="""
Recompute the headline metrics directly from the order store and compare them
with the analytics report for the same window.

Each mismatch is returned as a discrepancy with a severity
(`LOW` <= 0.5% < `MEDIUM` <= 1% < `HIGH` <= 5% < `CRITICAL`).
`success` is false when any discrepancy exceeds the configured tolerance.
CRITICAL discrepancies also raise an operational alert.
""",
)
async def audit_analytics(
    query: AnalyticsQuery,
    auditor: ConsistencyAuditor = Depends(get_consistency_auditor),
) -> AuditResponse:
    """Run the consistency audit for a window.

    Args:
        query: Window and granularity to audit.
        auditor: Consistency auditor.

    Returns:
        Audit outcome.

    Raises:
        DatabaseError: If the order store cannot be read.
    """
    try:
        result = await auditor.audit(query)
    except SQLAlchemyError as e:
        logger.error(
            "analytics.audit_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to audit analytics",
            details={"error": str(e)},
        ) from e

    message = (
        "Analytics are consistent with the order store within tolerance"
        if result.is_valid
        else f"Analytics validation failed: {len(result.discrepancies)} discrepancies found"
    )
    return AuditResponse(
        success=result.is_valid,
        message=message,
        discrepancies=result.discrepancies,
        timestamp=result.timestamp,
        date_range=result.date_range,
        unrecognized_status_count=result.unrecognized_status_count,
    )
