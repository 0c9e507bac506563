"""
Restaurant rating recomputation.

A restaurant's displayed rating is the arithmetic mean of its order review
ratings, rounded half-up to one decimal, and 0 when it has no reviews.
Runs per restaurant after each new review, and as a batch job over all
restaurants (scripts/update_ratings.py, POST /admin/ratings/recompute).
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.services.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

_ONE_DECIMAL = Decimal("0.1")


def mean_rating(ratings: Sequence[int]) -> Decimal:
    if not ratings:
        return Decimal("0.0")
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)


async def recompute_restaurant_rating(
    gateway: PersistenceGateway, db: AsyncSession, restaurant_id: int
) -> Decimal:
    """Recompute and store one restaurant's rating. Caller commits."""
    ratings = await gateway.review_ratings(db, restaurant_id)
    rating = mean_rating(ratings.get(restaurant_id, []))
    await gateway.set_restaurant_rating(db, restaurant_id, rating)
    logger.debug("Restaurant %s rating → %s", restaurant_id, rating)
    return rating


async def recompute_all_ratings(
    gateway: PersistenceGateway, db: AsyncSession
) -> dict[int, Decimal]:
    """Recompute every restaurant's rating in one pass. Caller commits."""
    ratings = await gateway.review_ratings(db)
    updated: dict[int, Decimal] = {}
    for restaurant_id in await gateway.restaurant_ids(db):
        rating = mean_rating(ratings.get(restaurant_id, []))
        await gateway.set_restaurant_rating(db, restaurant_id, rating)
        updated[restaurant_id] = rating
    logger.info("Recomputed ratings for %d restaurants", len(updated))
    return updated
