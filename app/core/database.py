"""Async SQLAlchemy 2.0 database setup."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the process-wide async engine from settings."""
    settings = get_settings()
    engine: AsyncEngine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )
    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Create async session maker bound to the shared engine."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions.

    Analytics endpoints only read, so the session is rolled back on error
    and simply closed otherwise.

    Yields:
        AsyncSession: Request-scoped database session.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
