"""Order store ORM models.

The order store is the source of truth for every analytics number. This
service only reads it: orders are created and moved through their lifecycle
by the order-management service.

Grain: one ``Order`` row per customer order, one ``OrderItem`` row per line.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.shared.models import TimestampMixin


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State transitions (owned by the order-management service):
    - PENDING -> RECEIVED -> PREPARING -> READY -> COMPLETED
    - any non-final state -> CANCELLED
    """

    PENDING = "pending"
    RECEIVED = "received"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    # Deprecated synonym of COMPLETED kept for rows written before the rename.
    # TODO: drop once the delivered -> completed backfill has run in production.
    DELIVERED = "delivered"


# Orders that generated revenue (prepared or handed over).
REVENUE_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.READY, OrderStatus.COMPLETED, OrderStatus.DELIVERED}
)

CANCELLED_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.CANCELLED})

KNOWN_STATUS_VALUES: frozenset[str] = frozenset(s.value for s in OrderStatus)


def status_values(statuses: frozenset[OrderStatus]) -> list[str]:
    """Return the sorted raw column values for a status partition."""
    return sorted(s.value for s in statuses)


class Order(TimestampMixin, Base):
    """Customer order.

    Attributes:
        id: Primary key.
        order_number: Unique human-facing order number.
        customer_name: Customer display name.
        status: Lifecycle state (raw string; legacy rows may hold unknown values).
        total: Order total as stored by the order service.
        created_at: Creation timestamp (UTC); analytics buckets by this column.
        updated_at: Last modification timestamp.
        items: Line items.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # Every analytics query filters on (status, created_at)
        Index("ix_orders_status_created_at", "status", "created_at"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
    )


class OrderItem(Base):
    """Order line item.

    ``unit_price`` is the current price field; ``price`` is the legacy field
    still written by older clients. Readers prefer ``unit_price`` when set.

    Attributes:
        id: Primary key.
        order_id: Parent order.
        product_id: Catalogue identifier (optional for free-text items).
        name: Product name at order time.
        quantity: Units ordered (>= 1).
        price: Legacy unit price.
        unit_price: Unit price (preferred over ``price``).
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"),
        index=True,
    )
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_item_price_non_negative"),
    )

    @property
    def effective_unit_price(self) -> Decimal:
        """Unit price used for revenue, preferring ``unit_price`` over ``price``."""
        return self.unit_price if self.unit_price is not None else self.price
