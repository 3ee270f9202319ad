"""Order store models consumed read-only by analytics."""

from app.features.orders.models import (
    CANCELLED_STATUSES,
    REVENUE_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
)

__all__ = [
    "CANCELLED_STATUSES",
    "REVENUE_STATUSES",
    "Order",
    "OrderItem",
    "OrderStatus",
]
