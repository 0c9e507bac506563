"""
ReviewService — one review per order, review points, rating refresh.

The review row is the only part that can fail the call. Review points and the
restaurant rating refresh are side effects: each runs in its own savepoint and
a failure is logged without losing the review.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from storefront.errors import DuplicateReview, OrderNotFound
from storefront.schemas.order import ReviewCreate, ReviewRead
from storefront.services.gateway import PersistenceGateway
from storefront.services.points import PointsLedger
from storefront.services.ratings import recompute_restaurant_rating

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        points_ledger: Optional[PointsLedger] = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = points_ledger or PointsLedger(gateway)

    async def submit_review(
        self, user_id: uuid.UUID, order_id: int, body: ReviewCreate
    ) -> ReviewRead:
        async with self._gateway.transaction() as db:
            order = await self._gateway.get_order(db, order_id, user_id=user_id)
            if order is None:
                raise OrderNotFound(f"Order {order_id} not found")
            if await self._gateway.get_review_for_order(db, order_id) is not None:
                raise DuplicateReview(f"Order {order_id} already has a review")

            review = await self._gateway.insert_review(
                db,
                order_id=order.id,
                restaurant_id=order.restaurant_id,
                user_id=user_id,
                rating=body.rating,
                comment=body.comment,
            )
            created = ReviewRead(
                id=review.id,
                order_id=order.id,
                restaurant_id=order.restaurant_id,
                rating=body.rating,
                comment=body.comment,
            )

            try:
                async with db.begin_nested():
                    await self._ledger.credit_review(
                        db, user_id, review.id, order.order_number
                    )
            except Exception as exc:
                logger.error("Review points failed for review %s: %s", review.id, exc)

            try:
                async with db.begin_nested():
                    await recompute_restaurant_rating(
                        self._gateway, db, order.restaurant_id
                    )
            except Exception as exc:
                logger.error(
                    "Rating refresh failed for restaurant %s: %s", order.restaurant_id, exc
                )

        logger.info(
            "Review %s stored for order %s (rating=%d)", created.id, order_id, body.rating
        )
        return created
