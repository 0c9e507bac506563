"""
create_tables.py — idempotent table creation script.
Run this before starting the service for the first time, or after schema changes.
Safe to run multiple times (all DDL uses IF NOT EXISTS). Seeds a points
configuration from settings when the points_config table is empty.

Usage:
    python scripts/create_tables.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from storefront.config import settings
from storefront.database import build_engine, build_session_factory, create_tables
from storefront.services.gateway import PersistenceGateway


async def main() -> None:
    """Create all tables and the initial points configuration."""
    engine = build_engine(settings.database_url)
    gateway = PersistenceGateway(build_session_factory(engine))

    print("Creating tables...")
    await create_tables(engine)
    print("  ✓ All tables created (IF NOT EXISTS)")

    async with gateway.transaction() as db:
        if await gateway.get_active_points_config(db) is None:
            await gateway.insert_points_config(
                db,
                points_per_order=settings.default_points_per_order,
                points_per_review=settings.default_points_per_review,
                points_per_referral=settings.default_points_per_referral,
                points_expiration_days=settings.default_points_expiration_days,
            )
            print(
                f"  ✓ Points config seeded ({settings.default_points_per_order} per order, "
                f"expires after {settings.default_points_expiration_days} days)"
            )
        else:
            print("  ✓ Points config already present")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
