"""
PersistenceGateway — table API over an async SQLAlchemy session factory.

The gateway is constructed once by the host (app lifespan, script or test
fixture) and injected into every service. It owns no session of its own:
callers open a transaction with `transaction()` and pass the session into the
query helpers, so that several helpers can share one unit of work.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import String, cast, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from storefront.database import check_db_connectivity
from storefront.models import (
    Address,
    Order,
    OrderItem,
    OrderReview,
    PointsConfig,
    PointsHistory,
    Product,
    Restaurant,
    UserPoints,
)
from storefront.schemas.restaurant import ProductRead, RestaurantRead

logger = logging.getLogger(__name__)

_ORDER_NUMBER_ATTEMPTS = 3


class PersistenceGateway:
    """CRUD and query helpers for every storefront table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Sessions ─────────────────────────────────────────────────────────────

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """A plain session for reads; the caller commits if it writes."""
        async with self._session_factory() as db:
            yield db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """A session inside BEGIN … COMMIT; any exception rolls back."""
        async with self._session_factory() as db:
            async with db.begin():
                yield db

    async def ping(self) -> bool:
        """True when the database answers a trivial query."""
        return await check_db_connectivity(self._session_factory)

    # ── Restaurants and products ─────────────────────────────────────────────

    async def get_restaurant(
        self, db: AsyncSession, restaurant_id: int
    ) -> Optional[RestaurantRead]:
        row = await db.get(Restaurant, restaurant_id)
        return RestaurantRead.model_validate(row) if row else None

    async def list_restaurants(
        self, db: AsyncSession, active_only: bool = True
    ) -> list[RestaurantRead]:
        stmt = select(Restaurant).order_by(Restaurant.name, Restaurant.id)
        if active_only:
            stmt = stmt.where(Restaurant.is_active.is_(True))
        result = await db.execute(stmt)
        return [RestaurantRead.model_validate(r) for r in result.scalars()]

    async def get_products(
        self,
        db: AsyncSession,
        restaurant_id: int,
        product_ids: Iterable[int],
    ) -> list[ProductRead]:
        """Available products of one restaurant among product_ids."""
        ids = list(product_ids)
        if not ids:
            return []
        result = await db.execute(
            select(Product).where(
                Product.restaurant_id == restaurant_id,
                Product.id.in_(ids),
                Product.is_available.is_(True),
            )
        )
        return [ProductRead.model_validate(p) for p in result.scalars()]

    async def set_restaurant_rating(
        self, db: AsyncSession, restaurant_id: int, rating: Decimal
    ) -> None:
        await db.execute(
            update(Restaurant)
            .where(Restaurant.id == restaurant_id)
            .values(rating=rating)
        )

    # ── Addresses ────────────────────────────────────────────────────────────

    async def list_addresses(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> list[Address]:
        """Display order: default first, then newest first."""
        result = await db.execute(
            select(Address)
            .where(Address.user_id == user_id)
            .order_by(
                Address.is_default.desc(),
                Address.created_at.desc(),
                Address.id.desc(),
            )
        )
        return list(result.scalars())

    async def get_address(
        self, db: AsyncSession, user_id: uuid.UUID, address_id: int
    ) -> Optional[Address]:
        result = await db.execute(
            select(Address).where(
                Address.id == address_id, Address.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def clear_default_address(self, db: AsyncSession, user_id: uuid.UUID) -> None:
        await db.execute(
            update(Address)
            .where(Address.user_id == user_id, Address.is_default.is_(True))
            .values(is_default=False)
        )

    async def mark_default_address(
        self, db: AsyncSession, user_id: uuid.UUID, address_id: int
    ) -> int:
        """Set is_default on one address; returns the number of rows touched."""
        result = await db.execute(
            update(Address)
            .where(Address.id == address_id, Address.user_id == user_id)
            .values(is_default=True)
        )
        return result.rowcount

    # ── Orders ───────────────────────────────────────────────────────────────

    async def next_order_number(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.coalesce(func.max(Order.order_number), 0) + 1)
        )
        return int(result.scalar_one())

    async def insert_order(self, db: AsyncSession, **fields) -> Order:
        """
        Insert an order with the next order number.

        order_number is unique; a concurrent checkout can take the same number
        between the MAX() read and the insert, so the insert runs in a
        savepoint and is retried with a fresh number.
        """
        attempt = 1
        while True:
            order = Order(order_number=await self.next_order_number(db), **fields)
            try:
                async with db.begin_nested():
                    db.add(order)
                    await db.flush()
                return order
            except IntegrityError:
                logger.warning(
                    "Order number %s collided (attempt %d/%d)",
                    order.order_number, attempt, _ORDER_NUMBER_ATTEMPTS,
                )
                if attempt >= _ORDER_NUMBER_ATTEMPTS:
                    raise
                attempt += 1

    async def insert_order_items(
        self,
        db: AsyncSession,
        order_id: int,
        lines: Iterable[tuple[ProductRead, int]],
    ) -> list[OrderItem]:
        items = [
            OrderItem(
                order_id=order_id,
                product_id=product.id,
                quantity=quantity,
                unit_price=product.price,
            )
            for product, quantity in lines
        ]
        db.add_all(items)
        await db.flush()
        return items

    async def get_order(
        self,
        db: AsyncSession,
        order_id: int,
        user_id: Optional[uuid.UUID] = None,
    ) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items), selectinload(Order.review))
        )
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_orders(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """(orders newest first, total count) for one user."""
        total = await db.scalar(
            select(func.count()).select_from(Order).where(Order.user_id == user_id)
        )
        result = await db.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .options(selectinload(Order.items), selectinload(Order.review))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars()), int(total or 0)

    async def count_order_items(self, db: AsyncSession, order_id: int) -> int:
        total = await db.scalar(
            select(func.count()).select_from(OrderItem).where(OrderItem.order_id == order_id)
        )
        return int(total or 0)

    # ── Reviews ──────────────────────────────────────────────────────────────

    async def get_review_for_order(
        self, db: AsyncSession, order_id: int
    ) -> Optional[OrderReview]:
        result = await db.execute(
            select(OrderReview).where(OrderReview.order_id == order_id)
        )
        return result.scalar_one_or_none()

    async def insert_review(self, db: AsyncSession, **fields) -> OrderReview:
        review = OrderReview(**fields)
        db.add(review)
        await db.flush()
        return review

    async def review_ratings(
        self, db: AsyncSession, restaurant_id: Optional[int] = None
    ) -> dict[int, list[int]]:
        """restaurant_id → list of review ratings."""
        stmt = select(OrderReview.restaurant_id, OrderReview.rating).where(
            OrderReview.rating.is_not(None)
        )
        if restaurant_id is not None:
            stmt = stmt.where(OrderReview.restaurant_id == restaurant_id)
        result = await db.execute(stmt)
        ratings: dict[int, list[int]] = {}
        for rid, rating in result.all():
            ratings.setdefault(rid, []).append(int(rating))
        return ratings

    async def restaurant_ids(self, db: AsyncSession) -> list[int]:
        result = await db.execute(select(Restaurant.id).order_by(Restaurant.id))
        return list(result.scalars())

    # ── Points ───────────────────────────────────────────────────────────────

    async def get_active_points_config(
        self, db: AsyncSession
    ) -> Optional[PointsConfig]:
        result = await db.execute(
            select(PointsConfig)
            .order_by(PointsConfig.created_at.desc(), PointsConfig.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def insert_points_config(self, db: AsyncSession, **fields) -> PointsConfig:
        config = PointsConfig(**fields)
        db.add(config)
        await db.flush()
        return config

    async def get_points_account(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> Optional[UserPoints]:
        result = await db.execute(
            select(UserPoints).where(UserPoints.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert_points_account(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        total_points: int,
        expiration_date: Optional[datetime] = None,
    ) -> UserPoints:
        """Insert or update the single user_points row for user_id."""
        account = await self.get_points_account(db, user_id)
        if account is None:
            account = UserPoints(
                user_id=user_id,
                total_points=total_points,
                points_expiration_date=expiration_date,
            )
            db.add(account)
        else:
            account.total_points = total_points
            if expiration_date is not None:
                account.points_expiration_date = expiration_date
        await db.flush()
        return account

    async def find_points_entry(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        action_type: str,
        reference_id: str,
    ) -> Optional[PointsHistory]:
        result = await db.execute(
            select(PointsHistory).where(
                PointsHistory.user_id == user_id,
                PointsHistory.action_type == action_type,
                PointsHistory.reference_id == reference_id,
            )
        )
        return result.scalar_one_or_none()

    async def append_points_history(self, db: AsyncSession, **fields) -> PointsHistory:
        entry = PointsHistory(**fields)
        db.add(entry)
        await db.flush()
        return entry

    async def list_points_history(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PointsHistory]:
        result = await db.execute(
            select(PointsHistory)
            .where(PointsHistory.user_id == user_id)
            .order_by(PointsHistory.created_at.desc(), PointsHistory.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars())

    async def expired_accounts(
        self, db: AsyncSession, now: datetime
    ) -> list[UserPoints]:
        result = await db.execute(
            select(UserPoints).where(
                UserPoints.total_points > 0,
                UserPoints.points_expiration_date.is_not(None),
                UserPoints.points_expiration_date < now,
            )
        )
        return list(result.scalars())

    # ── Integrity queries ────────────────────────────────────────────────────

    async def orders_missing_points(self, db: AsyncSession) -> list[Order]:
        """Orders with no 'order' entry in points_history."""
        credited = exists().where(
            PointsHistory.action_type == "order",
            PointsHistory.user_id == Order.user_id,
            PointsHistory.reference_id == cast(Order.id, String),
        )
        result = await db.execute(select(Order).where(~credited).order_by(Order.id))
        return list(result.scalars())

    async def orders_without_items(self, db: AsyncSession) -> list[int]:
        has_items = exists().where(OrderItem.order_id == Order.id)
        result = await db.execute(
            select(Order.id).where(~has_items).order_by(Order.id)
        )
        return list(result.scalars())

    async def points_totals(
        self, db: AsyncSession
    ) -> tuple[dict[uuid.UUID, int], dict[uuid.UUID, int]]:
        """(user → user_points.total_points, user → Σ points_history.points)."""
        accounts = await db.execute(select(UserPoints.user_id, UserPoints.total_points))
        sums = await db.execute(
            select(PointsHistory.user_id, func.sum(PointsHistory.points))
            .group_by(PointsHistory.user_id)
        )
        return (
            {uid: int(total) for uid, total in accounts.all()},
            {uid: int(total or 0) for uid, total in sums.all()},
        )
