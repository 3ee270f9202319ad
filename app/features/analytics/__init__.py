"""Analytics module for order time series, CSV export and consistency audits.

This module computes per-period order counts, revenue, cancellation loss and
a top products leaderboard, exports them as spreadsheet-friendly CSV, and
cross-checks the reported numbers against the order store.
"""

from app.features.analytics.audit import ConsistencyAuditor
from app.features.analytics.periods import TimeGranularity
from app.features.analytics.routes import router
from app.features.analytics.schemas import (
    AnalyticsQuery,
    AnalyticsResponse,
    AuditResult,
    CSVExportRequest,
)
from app.features.analytics.service import AnalyticsService

__all__ = [
    "AnalyticsQuery",
    "AnalyticsResponse",
    "AnalyticsService",
    "AuditResult",
    "CSVExportRequest",
    "ConsistencyAuditor",
    "TimeGranularity",
    "router",
]
