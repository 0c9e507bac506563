"""Shared fixtures: a fresh SQLite database per test, a seeded menu, factories."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import func, select

from storefront.database import build_engine, build_session_factory, create_tables
from storefront.models import PointsConfig, Product, Restaurant
from storefront.schemas.address import AddressCreate, AddressRead
from storefront.schemas.restaurant import ProductRead, RestaurantRead
from storefront.services.addresses import AddressBook
from storefront.services.gateway import PersistenceGateway


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def gateway(engine) -> PersistenceGateway:
    return PersistenceGateway(build_session_factory(engine))


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
async def restaurant(gateway) -> RestaurantRead:
    """Restaurant at (0, 0), 5 km radius, 3.00 delivery fee."""
    async with gateway.transaction() as db:
        row = Restaurant(
            name="Cantina Zero",
            category="mexicana",
            latitude=0.0,
            longitude=0.0,
            delivery_radius=5.0,
            delivery_fee=Decimal("3.00"),
        )
        db.add(row)
        await db.flush()
        restaurant_id = row.id
    async with gateway.session() as db:
        return await gateway.get_restaurant(db, restaurant_id)


@pytest.fixture
async def products(gateway, restaurant) -> list[ProductRead]:
    """Two products priced 10.00 and 5.00."""
    async with gateway.transaction() as db:
        rows = [
            Product(restaurant_id=restaurant.id, name="Burrito", price=Decimal("10.00")),
            Product(restaurant_id=restaurant.id, name="Churros", price=Decimal("5.00")),
        ]
        db.add_all(rows)
        await db.flush()
        ids = [r.id for r in rows]
    async with gateway.session() as db:
        found = await gateway.get_products(db, restaurant.id, ids)
    return sorted(found, key=lambda p: p.id)


@pytest.fixture
async def points_config(gateway) -> PointsConfig:
    async with gateway.transaction() as db:
        return await gateway.insert_points_config(
            db,
            points_per_order=10,
            points_per_review=5,
            points_per_referral=20,
            points_expiration_days=180,
        )


@pytest.fixture
def address_book(gateway) -> AddressBook:
    return AddressBook(gateway)


@pytest.fixture
def make_address(address_book):
    """Factory: save an address for a user at the given coordinates."""

    async def _make(
        user_id: uuid.UUID,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        is_default: bool = False,
        street: str = "Rua das Flores",
    ) -> AddressRead:
        return await address_book.create_address(
            user_id,
            AddressCreate(
                street=street,
                number="100",
                city="São Paulo",
                state="SP",
                zip_code="01001-000",
                latitude=latitude,
                longitude=longitude,
                is_default=is_default,
            ),
        )

    return _make


@pytest.fixture
def count_rows(gateway):
    """Factory: count rows of a model, optionally filtered."""

    async def _count(model, *criteria) -> int:
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        async with gateway.session() as db:
            return int(await db.scalar(stmt))

    return _count
