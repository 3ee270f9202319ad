"""Test fixtures for analytics module."""

from collections import defaultdict
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.features.analytics.periods import PeriodStrategy
from app.features.analytics.repository import PeriodTotals, ProductTotals
from app.features.analytics.schemas import AnalyticsQuery
from app.features.analytics.service import AnalyticsService
from app.features.orders.models import KNOWN_STATUS_VALUES, OrderStatus

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


def fixed_clock() -> datetime:
    """Clock pinned to FIXED_NOW."""
    return FIXED_NOW


@dataclass
class FakeItem:
    """In-memory order line."""

    name: str
    quantity: int
    price: Decimal
    product_id: str | None = None
    unit_price: Decimal | None = None

    @property
    def line_total(self) -> Decimal:
        unit = self.unit_price if self.unit_price is not None else self.price
        return self.quantity * unit


@dataclass
class FakeOrder:
    """In-memory order; ``total`` defaults to the sum of its lines."""

    id: int
    created_at: datetime
    status: str
    items: list[FakeItem] = field(default_factory=list)
    total: Decimal | None = None

    def __post_init__(self) -> None:
        if self.total is None:
            self.total = sum((i.line_total for i in self.items), Decimal(0))


def _in_window(order: FakeOrder, start: datetime, end: datetime) -> bool:
    return start <= order.created_at <= end


class InMemoryAnalyticsRepository:
    """Analytics repository folding in Python with the strategy formatter."""

    def __init__(self, orders: list[FakeOrder]) -> None:
        self.orders = orders
        self.calls: list[str] = []

    def _matching(self, start, end, statuses):
        values = {s.value for s in statuses}
        return [
            o for o in self.orders if _in_window(o, start, end) and o.status in values and o.items
        ]

    async def fetch_period_totals(
        self,
        start: datetime,
        end: datetime,
        statuses: Collection[OrderStatus],
        strategy: PeriodStrategy,
    ) -> list[PeriodTotals]:
        self.calls.append("period_totals")
        order_ids: dict[str, set[int]] = defaultdict(set)
        revenue: dict[str, Decimal] = defaultdict(Decimal)
        for order in self._matching(start, end, statuses):
            key = strategy.format(order.created_at)
            order_ids[key].add(order.id)
            revenue[key] += sum((i.line_total for i in order.items), Decimal(0))
        return [
            PeriodTotals(period=key, order_count=len(order_ids[key]), revenue=revenue[key])
            for key in sorted(order_ids)
        ]

    async def fetch_top_products(
        self,
        start: datetime,
        end: datetime,
        statuses: Collection[OrderStatus],
        limit: int,
    ) -> list[ProductTotals]:
        self.calls.append("top_products")
        totals: dict[tuple[str, str], list] = {}
        for order in self._matching(start, end, statuses):
            for item in order.items:
                key = (item.product_id or item.name, item.name)
                entry = totals.setdefault(key, [0, Decimal(0)])
                entry[0] += item.quantity
                entry[1] += item.line_total
        ranked = sorted(totals.items(), key=lambda kv: (-kv[1][0], kv[0][0]))
        return [
            ProductTotals(product_key=k[0], name=k[1], quantity=v[0], revenue=v[1])
            for k, v in ranked[:limit]
        ]


class InMemoryOrderLedger:
    """Ground-truth reads over in-memory orders, using ``order.total``."""

    def __init__(self, orders: list[FakeOrder]) -> None:
        self.orders = orders

    def _matching(self, start, end, statuses):
        values = {s.value for s in statuses}
        return [o for o in self.orders if _in_window(o, start, end) and o.status in values]

    async def count_orders(self, start, end, statuses) -> int:
        return len(self._matching(start, end, statuses))

    async def sum_totals(self, start, end, statuses) -> Decimal:
        return sum((o.total for o in self._matching(start, end, statuses)), Decimal(0))

    async def count_unrecognized(self, start, end) -> int:
        return sum(
            1
            for o in self.orders
            if _in_window(o, start, end) and o.status not in KNOWN_STATUS_VALUES
        )


def ts(year: int, month: int, day: int, hour: int = 12) -> datetime:
    """UTC timestamp helper."""
    return datetime(year, month, day, hour, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    """Settings with the default analytics policy."""
    return Settings(analytics_max_range_months=120, analytics_default_top=10)


@pytest.fixture
def sample_orders() -> list[FakeOrder]:
    """November: two fulfilled orders totaling 40; December: one totaling 18.

    Also one cancelled order in December and one pending order that must be
    ignored by both series.
    """
    return [
        FakeOrder(
            id=1,
            created_at=ts(2025, 11, 3),
            status=OrderStatus.COMPLETED.value,
            items=[
                FakeItem(name="Pizza Margarita", quantity=2, price=Decimal("10.00"), product_id="P1"),
            ],
        ),
        FakeOrder(
            id=2,
            created_at=ts(2025, 11, 20),
            status=OrderStatus.DELIVERED.value,
            items=[
                FakeItem(name="Lasagna", quantity=1, price=Decimal("12.00"), product_id="P2"),
                FakeItem(
                    name="Soda",
                    quantity=4,
                    price=Decimal("3.00"),
                    unit_price=Decimal("2.00"),
                ),
            ],
        ),
        FakeOrder(
            id=3,
            created_at=ts(2025, 12, 5),
            status=OrderStatus.READY.value,
            items=[
                FakeItem(name="Pizza Margarita", quantity=1, price=Decimal("10.00"), product_id="P1"),
                FakeItem(name="Soda", quantity=4, price=Decimal("2.00")),
            ],
        ),
        FakeOrder(
            id=4,
            created_at=ts(2025, 12, 10),
            status=OrderStatus.CANCELLED.value,
            items=[
                FakeItem(name="Lasagna", quantity=2, price=Decimal("12.50"), product_id="P2"),
            ],
        ),
        FakeOrder(
            id=5,
            created_at=ts(2025, 12, 11),
            status=OrderStatus.PENDING.value,
            items=[
                FakeItem(name="Pizza Margarita", quantity=9, price=Decimal("10.00"), product_id="P1"),
            ],
        ),
    ]


@pytest.fixture
def repository(sample_orders: list[FakeOrder]) -> InMemoryAnalyticsRepository:
    """In-memory repository over the sample orders."""
    return InMemoryAnalyticsRepository(sample_orders)


@pytest.fixture
def service(repository: InMemoryAnalyticsRepository, settings: Settings) -> AnalyticsService:
    """Analytics service with a pinned clock."""
    return AnalyticsService(repository, settings=settings, clock=fixed_clock)


@pytest.fixture
def nov_dec_query() -> AnalyticsQuery:
    """Month-grouped query over November and December 2025."""
    return AnalyticsQuery(
        from_date=date(2025, 11, 1),
        to_date=date(2025, 12, 31),
        group_by="month",
        top=3,
    )


@pytest.fixture
def make_service(sample_orders: list[FakeOrder]):
    """Factory for services over the sample orders with a custom range policy."""

    def _make(max_months: int = 120) -> tuple[AnalyticsService, InMemoryAnalyticsRepository]:
        repository = InMemoryAnalyticsRepository(sample_orders)
        service = AnalyticsService(
            repository,
            settings=Settings(analytics_max_range_months=max_months),
            clock=fixed_clock,
        )
        return service, repository

    return _make


@pytest.fixture
def make_ledger():
    """Factory for in-memory ledgers."""
    return InMemoryOrderLedger


@pytest.fixture
def make_order():
    """Factory for in-memory orders."""
    return FakeOrder


@pytest.fixture
def make_item():
    """Factory for in-memory order lines."""
    return FakeItem


@pytest.fixture
def fixed_now() -> datetime:
    """The pinned current time used by service and auditor clocks."""
    return FIXED_NOW


@pytest.fixture
def clock():
    """Clock pinned to FIXED_NOW."""
    return fixed_clock


@pytest.fixture
async def client():
    """Create async HTTP client for testing FastAPI endpoints."""
    from app.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
