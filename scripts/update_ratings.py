"""
update_ratings.py — batch recomputation of every restaurant's rating from its
order reviews. Intended for a periodic job.

Usage:
    python scripts/update_ratings.py
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from storefront.config import settings
from storefront.database import build_engine, build_session_factory
from storefront.services.gateway import PersistenceGateway
from storefront.services.ratings import recompute_all_ratings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> None:
    engine = build_engine(settings.database_url)
    gateway = PersistenceGateway(build_session_factory(engine))
    try:
        async with gateway.transaction() as db:
            ratings = await recompute_all_ratings(gateway, db)
        for restaurant_id, rating in ratings.items():
            logger.info("restaurant %s → %s", restaurant_id, rating)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
