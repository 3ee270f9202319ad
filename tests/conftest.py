"""Fixtures for tests that run against a live PostgreSQL order store."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.features.orders.models import Order, OrderItem  # noqa: F401  (registers tables)
from app.main import app


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session bound to an outer transaction that is always rolled back.

    Tables are created inside the transaction, so nothing persists. Skips the
    test when PostgreSQL is unreachable (start it with docker-compose up -d).
    """
    engine = create_async_engine(get_settings().database_url)
    try:
        conn = await engine.connect()
    except (SQLAlchemyError, OSError) as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {e}")

    trans = await conn.begin()
    await conn.run_sync(Base.metadata.create_all)
    session = AsyncSession(bind=conn, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await trans.rollback()
        await conn.close()
        await engine.dispose()


@pytest.fixture
async def api_client(db_session: AsyncSession):
    """HTTP client whose requests share ``db_session``."""

    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = _session_override
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)
