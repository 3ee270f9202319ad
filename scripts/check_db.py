#!/usr/bin/env python
"""Check database connectivity and the order store schema.

Usage:
    uv run python scripts/check_db.py
"""

import asyncio
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import get_settings
from app.features.orders.models import KNOWN_STATUS_VALUES

ORDER_TABLES = ("orders", "order_item")


async def check_database():
    """Verify database connection, order tables and status values."""
    settings = get_settings()

    print("OrderInsight - Database Connectivity Check")
    print("=" * 45)
    print(f"Database URL: {settings.database_url.split('@')[1]}")  # Hide credentials
    print()

    engine = create_async_engine(settings.database_url)

    try:
        async with engine.connect() as conn:
            # Test basic connectivity
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1
            print("[OK] Basic connectivity")

            # Check PostgreSQL version
            result = await conn.execute(text("SELECT version()"))
            version = result.scalar()
            print(f"[OK] PostgreSQL version: {version[:50]}...")

            # Check order store tables
            missing = []
            for table in ORDER_TABLES:
                result = await conn.execute(
                    text("SELECT to_regclass(:name)"), {"name": f"public.{table}"}
                )
                if result.scalar():
                    print(f"[OK] Table {table} present")
                else:
                    missing.append(table)
                    print(f"[WARN] Table {table} missing")

            if missing:
                print("       Run: uv run alembic upgrade head")
            else:
                # Analytics ignores statuses outside the known lifecycle
                result = await conn.execute(
                    text("SELECT status, count(*) FROM orders GROUP BY status ORDER BY status")
                )
                for status, count in result:
                    marker = "" if status in KNOWN_STATUS_VALUES else "  [WARN] unrecognized"
                    print(f"       {status:<12} {count:>8}{marker}")

        print()
        print("Database check completed successfully!")
        return 0

    except (SQLAlchemyError, OSError) as e:
        print(f"[FAIL] Connection failed: {e}")
        print()
        print("Troubleshooting:")
        print("  1. Ensure Docker is running: docker-compose up -d")
        print("  2. Check DATABASE_URL in .env file")
        print("  3. Verify PostgreSQL container is healthy: docker-compose ps")
        return 1

    finally:
        await engine.dispose()


def main():
    sys.exit(asyncio.run(check_database()))


if __name__ == "__main__":
    main()
