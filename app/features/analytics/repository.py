"""Aggregation queries against the order store.

Each method runs one grouped query: orders are joined to their line items
(orders without items contribute nothing), filtered by creation window and
status partition, then folded by period or by product.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable

from sqlalchemy import ColumnElement, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.features.analytics.periods import PeriodStrategy
from app.features.orders.models import Order, OrderItem, OrderStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class PeriodTotals:
    """Raw per-period fold: distinct orders and summed line revenue."""

    period: str
    order_count: int
    revenue: Decimal


@dataclass(frozen=True)
class ProductTotals:
    """Raw per-product fold over the query window."""

    product_key: str
    name: str
    quantity: int
    revenue: Decimal


@runtime_checkable
class AnalyticsRepositoryProtocol(Protocol):
    """Read-only aggregation capability consumed by the analytics service."""

    async def fetch_period_totals(
        self,
        start: datetime,
        end: datetime,
        statuses: Collection[OrderStatus],
        strategy: PeriodStrategy,
    ) -> list[PeriodTotals]:
        """Fold line items by period bucket, ascending by period key."""
        ...

    async def fetch_top_products(
        self,
        start: datetime,
        end: datetime,
        statuses: Collection[OrderStatus],
        limit: int,
    ) -> list[ProductTotals]:
        """Fold line items by product, descending by quantity, truncated."""
        ...


def _item_revenue() -> ColumnElement[Decimal]:
    # quantity x unit price, preferring unit_price over the legacy price
    return OrderItem.quantity * func.coalesce(OrderItem.unit_price, OrderItem.price)


class AnalyticsRepository:
    """SQLAlchemy implementation of the analytics aggregation queries."""

    def __init__(self, db: AsyncSession) -> None:
        """Bind the repository to a session.

        Args:
            db: Async database session (request scoped).
        """
        self.db = db

    async def fetch_period_totals(
        self,
        start: datetime,
        end: datetime,
        statuses: Collection[OrderStatus],
        strategy: PeriodStrategy,
    ) -> list[PeriodTotals]:
        """Fold line items by period bucket.

        Args:
            start: Window start (inclusive, UTC).
            end: Window end (inclusive, UTC).
            statuses: Status partition to include.
            strategy: Period bucketing strategy.

        Returns:
            One row per non-empty bucket, ascending by period key.
        """
        period = strategy.period_expression(Order.created_at)
        stmt = (
            select(
                period.label("period"),
                func.count(distinct(Order.id)).label("order_count"),
                func.coalesce(func.sum(_item_revenue()), 0).label("revenue"),
            )
            .select_from(Order)
            .join(OrderItem, OrderItem.order_id == Order.id)
            .where(
                (Order.created_at >= start)
                & (Order.created_at <= end)
                & Order.status.in_([s.value for s in statuses])
            )
            .group_by(period)
            .order_by(period)
        )

        result = await self.db.execute(stmt)
        rows = [
            PeriodTotals(
                period=str(row.period),
                order_count=int(row.order_count),
                revenue=Decimal(str(row.revenue)),
            )
            for row in result
        ]

        logger.debug(
            "analytics.period_totals_fetched",
            group_by=strategy.granularity.value,
            statuses=sorted(s.value for s in statuses),
            buckets=len(rows),
        )
        return rows

    async def fetch_top_products(
        self,
        start: datetime,
        end: datetime,
        statuses: Collection[OrderStatus],
        limit: int,
    ) -> list[ProductTotals]:
        """Fold line items by product identity.

        Product identity is the catalogue id, or the item name for items
        recorded without one.

        Args:
            start: Window start (inclusive, UTC).
            end: Window end (inclusive, UTC).
            statuses: Status partition to include.
            limit: Maximum number of products to return.

        Returns:
            Products ordered by quantity sold (highest first).
        """
        product_key = func.coalesce(OrderItem.product_id, OrderItem.name)
        quantity = func.sum(OrderItem.quantity)
        stmt = (
            select(
                product_key.label("product_key"),
                OrderItem.name.label("name"),
                quantity.label("quantity"),
                func.coalesce(func.sum(_item_revenue()), 0).label("revenue"),
            )
            .select_from(Order)
            .join(OrderItem, OrderItem.order_id == Order.id)
            .where(
                (Order.created_at >= start)
                & (Order.created_at <= end)
                & Order.status.in_([s.value for s in statuses])
            )
            .group_by(product_key, OrderItem.name)
            .order_by(quantity.desc(), product_key)
            .limit(limit)
        )

        result = await self.db.execute(stmt)
        return [
            ProductTotals(
                product_key=str(row.product_key),
                name=str(row.name),
                quantity=int(row.quantity),
                revenue=Decimal(str(row.revenue)),
            )
            for row in result
        ]
