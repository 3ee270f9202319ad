"""Consistency audit of reported analytics against the order store.

The auditor recomputes each headline metric straight from order rows:
counts with ``COUNT(*)`` and money from ``orders.total`` summed in Python.
It does not share any query with the aggregation repository, so a bug in
the aggregation path cannot hide itself here.

Severity of a discrepancy (by percent difference):
- > 5%   -> CRITICAL (also emits an alert)
- > 1%   -> HIGH
- > 0.5% -> MEDIUM
- else   -> LOW
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Protocol, runtime_checkable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.features.analytics.mapper import round_money
from app.features.analytics.periods import TimeGranularity
from app.features.analytics.schemas import (
    AnalyticsQuery,
    AuditAlert,
    AuditMetric,
    AuditResult,
    DateRange,
    Discrepancy,
    DiscrepancySeverity,
)
from app.features.analytics.service import AnalyticsService, normalize_window
from app.features.orders.models import (
    CANCELLED_STATUSES,
    KNOWN_STATUS_VALUES,
    REVENUE_STATUSES,
    Order,
    OrderStatus,
    status_values,
)

logger = get_logger(__name__)

CRITICAL_THRESHOLD_PCT = Decimal("5")
HIGH_THRESHOLD_PCT = Decimal("1")
MEDIUM_THRESHOLD_PCT = Decimal("0.5")

ALERT_MESSAGE = "Critical discrepancies detected between reported analytics and the order store"
ALERT_ACTION = "Review the aggregation queries and order data for the affected date range"


# =============================================================================
# Ground-truth Ledger
# =============================================================================


@runtime_checkable
class OrderLedgerProtocol(Protocol):
    """Direct reads over raw order rows."""

    async def count_orders(
        self, start: datetime, end: datetime, statuses: Collection[OrderStatus]
    ) -> int: ...

    async def sum_totals(
        self, start: datetime, end: datetime, statuses: Collection[OrderStatus]
    ) -> Decimal: ...

    async def count_unrecognized(self, start: datetime, end: datetime) -> int: ...


class OrderLedger:
    """SQLAlchemy ground-truth reads for the auditor."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def count_orders(
        self, start: datetime, end: datetime, statuses: Collection[OrderStatus]
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(Order)
            .where(
                (Order.created_at >= start)
                & (Order.created_at <= end)
                & Order.status.in_(status_values(frozenset(statuses)))
            )
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def sum_totals(
        self, start: datetime, end: datetime, statuses: Collection[OrderStatus]
    ) -> Decimal:
        stmt = select(Order.total).where(
            (Order.created_at >= start)
            & (Order.created_at <= end)
            & Order.status.in_(status_values(frozenset(statuses)))
        )
        result = await self.db.execute(stmt)
        return sum((Decimal(str(total)) for total in result.scalars()), Decimal(0))

    async def count_unrecognized(self, start: datetime, end: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(Order)
            .where(
                (Order.created_at >= start)
                & (Order.created_at <= end)
                & Order.status.not_in(sorted(KNOWN_STATUS_VALUES))
            )
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())


# =============================================================================
# Alerting
# =============================================================================


class AlertSink(Protocol):
    """Destination for critical audit alerts."""

    async def send(self, alert: AuditAlert) -> None: ...


class LoggingAlertSink:
    """Emit alerts as critical structured log events."""

    async def send(self, alert: AuditAlert) -> None:
        logger.critical(
            "analytics.audit_critical_alert",
            alert_type=alert.type,
            from_date=str(alert.date_range.from_date),
            to_date=str(alert.date_range.to_date),
            total_discrepancies=alert.total_discrepancies,
            critical_metrics=[d.metric.value for d in alert.critical_discrepancies],
            message=alert.message,
            action_required=alert.action_required,
        )


# =============================================================================
# Discrepancy Classification
# =============================================================================


def percent_difference(reported: Decimal, actual: Decimal) -> Decimal | None:
    """Return ``|reported - actual| / actual x 100`` rounded to 2 decimals.

    Returns:
        0 when both are zero, None when only ``actual`` is zero.
    """
    if actual == 0:
        return Decimal("0.00") if reported == 0 else None
    return round_money(abs(reported - actual) / abs(actual) * 100)


def classify_severity(percent: Decimal | None) -> DiscrepancySeverity:
    """Map a percent difference to a severity level."""
    if percent is None or percent > CRITICAL_THRESHOLD_PCT:
        return DiscrepancySeverity.CRITICAL
    if percent > HIGH_THRESHOLD_PCT:
        return DiscrepancySeverity.HIGH
    if percent > MEDIUM_THRESHOLD_PCT:
        return DiscrepancySeverity.MEDIUM
    return DiscrepancySeverity.LOW


def build_discrepancy(
    metric: AuditMetric,
    reported: Decimal | int,
    actual: Decimal | int,
) -> Discrepancy:
    """Build a discrepancy record for one metric."""
    reported_value = Decimal(reported)
    actual_value = Decimal(actual)
    percent = percent_difference(reported_value, actual_value)
    return Discrepancy(
        metric=metric,
        reported_value=reported_value,
        actual_value=actual_value,
        percent_difference=percent,
        severity=classify_severity(percent),
    )


def _utc_now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Auditor
# =============================================================================


class ConsistencyAuditor:
    """Cross-check reported analytics against a direct recomputation."""

    def __init__(
        self,
        ledger: OrderLedgerProtocol,
        analytics_service: AnalyticsService,
        alert_sink: AlertSink | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the auditor.

        Args:
            ledger: Ground-truth reads over raw orders.
            analytics_service: Produces the report under audit.
            alert_sink: Receives alerts for CRITICAL discrepancies
                (defaults to structured logging).
            settings: Application settings (defaults to the cached singleton).
            clock: Returns the current time; stamps results and sets the
                scheduled window.
        """
        self.ledger = ledger
        self.analytics_service = analytics_service
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.settings = settings or get_settings()
        self.clock = clock

    async def audit(self, query: AnalyticsQuery) -> AuditResult:
        """Audit the analytics report for one query window.

        A window without data is reported as all zeros and still audited,
        so orders the aggregation path missed entirely are caught.

        Args:
            query: Window and granularity of the report to audit.

        Returns:
            Audit result with every discrepancy found.

        Raises:
            AnalyticsQueryError: If the window is invalid.
        """
        report = await self.analytics_service.compute_analytics(query)
        start, end = normalize_window(query.from_date, query.to_date)

        if report is None:
            reported_orders, reported_cancelled = 0, 0
            reported_revenue, reported_lost = Decimal(0), Decimal(0)
        else:
            reported_orders = report.summary.order_count
            reported_cancelled = report.summary.cancelled_count
            reported_revenue = report.summary.revenue
            reported_lost = report.summary.lost_revenue

        actual_orders = await self.ledger.count_orders(start, end, REVENUE_STATUSES)
        actual_cancelled = await self.ledger.count_orders(start, end, CANCELLED_STATUSES)
        actual_revenue = await self.ledger.sum_totals(start, end, REVENUE_STATUSES)
        actual_lost = await self.ledger.sum_totals(start, end, CANCELLED_STATUSES)
        unrecognized = await self.ledger.count_unrecognized(start, end)

        discrepancies: list[Discrepancy] = []

        for metric, reported, actual in (
            (AuditMetric.FULFILLED_ORDER_COUNT, reported_orders, actual_orders),
            (AuditMetric.CANCELLED_ORDER_COUNT, reported_cancelled, actual_cancelled),
        ):
            if reported != actual:
                discrepancies.append(build_discrepancy(metric, reported, actual))

        for metric, reported_money, actual_money in (
            (AuditMetric.TOTAL_REVENUE, reported_revenue, actual_revenue),
            (AuditMetric.LOST_REVENUE, reported_lost, actual_lost),
        ):
            if round_money(reported_money) != round_money(actual_money):
                discrepancies.append(
                    build_discrepancy(
                        metric, round_money(reported_money), round_money(actual_money)
                    )
                )

        tolerance = Decimal(str(self.settings.audit_tolerance_pct))
        is_valid = not any(
            d.percent_difference is None or d.percent_difference > tolerance
            for d in discrepancies
        )

        result = AuditResult(
            is_valid=is_valid,
            discrepancies=discrepancies,
            timestamp=self.clock(),
            date_range=DateRange(
                from_date=query.from_date,
                to_date=query.to_date,
                group_by=query.group_by,
            ),
            unrecognized_status_count=unrecognized,
        )

        if unrecognized:
            logger.warning(
                "analytics.audit_unrecognized_statuses",
                from_date=str(query.from_date),
                to_date=str(query.to_date),
                count=unrecognized,
            )

        critical = [d for d in discrepancies if d.severity == DiscrepancySeverity.CRITICAL]
        if critical:
            await self.alert_sink.send(
                AuditAlert(
                    timestamp=result.timestamp,
                    date_range=result.date_range,
                    discrepancies=discrepancies,
                    critical_discrepancies=critical,
                    total_discrepancies=len(discrepancies),
                    message=ALERT_MESSAGE,
                    action_required=ALERT_ACTION,
                )
            )

        logger.info(
            "analytics.audit_completed",
            from_date=str(query.from_date),
            to_date=str(query.to_date),
            is_valid=is_valid,
            discrepancy_count=len(discrepancies),
            critical_count=len(critical),
        )

        return result

    async def run_scheduled_audit(self, days: int | None = None) -> AuditResult:
        """Audit the trailing window ending today with daily granularity.

        Args:
            days: Window length in days (defaults to ``audit_window_days``).

        Returns:
            Audit result.
        """
        window_days = days or self.settings.audit_window_days
        today = self.clock().astimezone(UTC).date()
        query = AnalyticsQuery(
            from_date=today - timedelta(days=window_days),
            to_date=today,
            group_by=TimeGranularity.DAY,
        )

        logger.info("analytics.scheduled_audit_started", window_days=window_days)
        return await self.audit(query)
