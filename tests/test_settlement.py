import asyncio
import logging
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from storefront.errors import (
    CartRestaurantMismatch,
    EmptyCart,
    IneligibleAddress,
    OrderPersistenceFailure,
    SettlementError,
)
from storefront.models import Order, OrderItem, PointsHistory, Product, UserPoints
from storefront.schemas.address import AddressCreate
from storefront.services.cart import CartLedger
from storefront.services.points import PointsLedger
from storefront.services.settlement import OrderSettlementService


@pytest.fixture
def settlement(gateway):
    return OrderSettlementService(gateway)


@pytest.fixture
def cart(restaurant, products):
    """Two of product A (10.00), one of product B (5.00)."""
    a, b = products
    return CartLedger.from_quantities(restaurant.id, {a.id: 2, b.id: 1})


@pytest.fixture
async def near_address(make_address, user_id):
    return await make_address(user_id, 0.0, 0.03)


async def _balance(gateway, user_id) -> int:
    async with gateway.session() as db:
        return await PointsLedger(gateway).balance(db, user_id)


async def test_delivery_checkout(
    settlement, gateway, restaurant, cart, near_address, user_id, points_config, count_rows
):
    confirmation = await settlement.confirm_order(
        user_id, cart, restaurant, "delivery", "credit_card",
        notes="no onions", delivery_address=near_address,
    )

    assert confirmation.subtotal == Decimal("25.00")
    assert confirmation.delivery_fee == Decimal("3.00")
    assert confirmation.total == Decimal("28.00")
    assert confirmation.points_credited
    assert confirmation.points_awarded == 10
    assert confirmation.delivery_address.street == near_address.street

    async with gateway.session() as db:
        order = await gateway.get_order(db, confirmation.order_id, user_id=user_id)
    assert order.total_amount == Decimal("28.00")
    assert order.notes == "no onions"
    assert len(order.items) == 2

    history = await count_rows(
        PointsHistory,
        PointsHistory.user_id == user_id,
        PointsHistory.action_type == "order",
        PointsHistory.reference_id == str(order.id),
    )
    assert history == 1
    assert await _balance(gateway, user_id) == 10


async def test_items_snapshot_unit_prices(
    settlement, gateway, restaurant, products, cart, near_address, user_id, points_config
):
    confirmation = await settlement.confirm_order(
        user_id, cart, restaurant, "delivery", "cash", delivery_address=near_address
    )

    async with gateway.transaction() as db:
        await db.execute(update(Product).values(price=Decimal("99.00")))

    async with gateway.session() as db:
        result = await db.execute(
            select(OrderItem.product_id, OrderItem.quantity, OrderItem.unit_price)
            .where(OrderItem.order_id == confirmation.order_id)
            .order_by(OrderItem.product_id)
        )
        rows = result.all()
    a, b = products
    assert rows == [(a.id, 2, Decimal("10.00")), (b.id, 1, Decimal("5.00"))]


async def test_balance_grows_by_points_per_order(
    settlement, gateway, restaurant, cart, near_address, user_id, points_config
):
    async with gateway.transaction() as db:
        await PointsLedger(gateway).credit(db, user_id, 7, "referral", "friend", "Referral")

    await settlement.confirm_order(
        user_id, cart, restaurant, "delivery", "cash", delivery_address=near_address
    )
    assert await _balance(gateway, user_id) == 17


async def test_pickup_needs_no_address(
    settlement, restaurant, cart, user_id, points_config
):
    confirmation = await settlement.confirm_order(
        user_id, cart, restaurant, "pickup", "cash"
    )
    assert confirmation.delivery_fee == Decimal("0.00")
    assert confirmation.total == Decimal("25.00")
    assert confirmation.delivery_address is None


async def test_order_numbers_increase(
    settlement, restaurant, cart, user_id, points_config
):
    numbers = []
    for _ in range(3):
        confirmation = await settlement.confirm_order(
            user_id, cart, restaurant, "pickup", "cash"
        )
        numbers.append(confirmation.order_number)
    assert numbers == [1, 2, 3]


# ── Validation failures write nothing ────────────────────────────────────────


async def test_empty_cart(settlement, restaurant, user_id, near_address, count_rows):
    with pytest.raises(EmptyCart) as info:
        await settlement.confirm_order(
            user_id, CartLedger(restaurant.id), restaurant, "delivery", "cash",
            delivery_address=near_address,
        )
    assert info.value.step == "validate"
    assert await count_rows(Order) == 0


async def test_cart_with_only_unknown_products(
    settlement, restaurant, products, user_id, count_rows
):
    cart = CartLedger.from_quantities(restaurant.id, {9999: 1})
    with pytest.raises(EmptyCart) as info:
        await settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")
    assert info.value.step == "compute_totals"
    assert await count_rows(Order) == 0


async def test_delivery_without_address(settlement, restaurant, cart, user_id, count_rows):
    with pytest.raises(IneligibleAddress):
        await settlement.confirm_order(user_id, cart, restaurant, "delivery", "cash")
    assert await count_rows(Order) == 0


async def test_out_of_range_address(
    settlement, restaurant, cart, user_id, make_address, count_rows
):
    far = await make_address(user_id, 0.0, 0.06)
    with pytest.raises(IneligibleAddress):
        await settlement.confirm_order(
            user_id, cart, restaurant, "delivery", "cash", delivery_address=far
        )
    assert await count_rows(Order) == 0
    assert await count_rows(PointsHistory) == 0


async def test_ungeocoded_address(
    settlement, restaurant, cart, user_id, make_address, count_rows
):
    unresolved = await make_address(user_id)
    with pytest.raises(IneligibleAddress):
        await settlement.confirm_order(
            user_id, cart, restaurant, "delivery", "cash", delivery_address=unresolved
        )
    assert await count_rows(Order) == 0


async def test_someone_elses_address(
    settlement, restaurant, cart, user_id, make_address, count_rows
):
    other = await make_address(uuid.uuid4(), 0.0, 0.01)
    with pytest.raises(IneligibleAddress):
        await settlement.confirm_order(
            user_id, cart, restaurant, "delivery", "cash", delivery_address=other
        )
    assert await count_rows(Order) == 0


async def test_cart_from_another_restaurant(settlement, restaurant, products, user_id):
    cart = CartLedger.from_quantities(restaurant.id + 1, {products[0].id: 1})
    with pytest.raises(CartRestaurantMismatch):
        await settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")


@pytest.mark.parametrize("delivery_type,payment", [("drone", "cash"), ("pickup", "pix")])
async def test_unknown_delivery_or_payment(
    settlement, restaurant, cart, user_id, delivery_type, payment
):
    with pytest.raises(SettlementError):
        await settlement.confirm_order(user_id, cart, restaurant, delivery_type, payment)


# ── Points failures never undo the order ─────────────────────────────────────


async def test_missing_points_config_keeps_order(
    settlement, gateway, restaurant, cart, near_address, user_id, count_rows
):
    confirmation = await settlement.confirm_order(
        user_id, cart, restaurant, "delivery", "cash", delivery_address=near_address
    )

    assert not confirmation.points_credited
    assert confirmation.points_awarded == 0
    assert await count_rows(Order, Order.id == confirmation.order_id) == 1
    assert await count_rows(OrderItem, OrderItem.order_id == confirmation.order_id) == 2
    assert await count_rows(PointsHistory) == 0
    assert await count_rows(UserPoints) == 0


async def test_history_write_failure_rolls_back_balance_only(
    settlement, gateway, restaurant, cart, near_address, user_id, points_config,
    count_rows, monkeypatch,
):
    async def broken_append(db, **fields):
        raise SQLAlchemyError("points_history unavailable")

    monkeypatch.setattr(gateway, "append_points_history", broken_append)

    confirmation = await settlement.confirm_order(
        user_id, cart, restaurant, "delivery", "cash", delivery_address=near_address
    )

    assert not confirmation.points_credited
    assert await count_rows(Order) == 1
    assert await count_rows(OrderItem) == 2
    # the balance upsert ran before the failure and was rolled back with it
    assert await count_rows(UserPoints) == 0
    assert await _balance(gateway, user_id) == 0


# ── Persistence failures abort everything ────────────────────────────────────


async def test_item_write_failure_leaves_no_order(
    settlement, gateway, restaurant, cart, near_address, user_id, points_config,
    count_rows, monkeypatch,
):
    async def broken_items(db, order_id, lines):
        raise SQLAlchemyError("order_items unavailable")

    monkeypatch.setattr(gateway, "insert_order_items", broken_items)

    with pytest.raises(OrderPersistenceFailure) as info:
        await settlement.confirm_order(
            user_id, cart, restaurant, "delivery", "cash", delivery_address=near_address
        )
    assert info.value.step == "persist_items"
    assert await count_rows(Order) == 0
    assert await count_rows(PointsHistory) == 0


# ── Address snapshot ─────────────────────────────────────────────────────────


async def test_snapshot_survives_address_edit_and_delete(
    settlement, gateway, address_book, restaurant, cart, near_address, user_id, points_config
):
    confirmation = await settlement.confirm_order(
        user_id, cart, restaurant, "delivery", "cash", delivery_address=near_address
    )

    await address_book.create_address(
        user_id,
        AddressCreate(
            street="Avenida Nova", number="9", city="Campinas", state="SP",
            zip_code="13010-000", latitude=0.0, longitude=0.01, is_default=True,
        ),
    )
    async with gateway.transaction() as db:
        row = await gateway.get_address(db, user_id, near_address.id)
        row.street = "Rua Trocada"
    await address_book.delete_address(user_id, near_address.id)

    async with gateway.session() as db:
        order = await gateway.get_order(db, confirmation.order_id)
    assert order.delivery_address["street"] == near_address.street
    assert order.delivery_address["zip_code"] == near_address.zip_code
    assert order.delivery_address["latitude"] == 0.0
    assert order.delivery_address["longitude"] == 0.03


# ── Caller cancellation ──────────────────────────────────────────────────────


async def _eventually(predicate, attempts=200):
    for _ in range(attempts):
        if await predicate():
            return True
        await asyncio.sleep(0.01)
    return False


def _gate_items(monkeypatch, gateway, fail=False):
    """Hold insert_order_items until released; the order row is already flushed."""
    original = gateway.insert_order_items
    reached, release = asyncio.Event(), asyncio.Event()

    async def gated(db, order_id, lines):
        reached.set()
        await release.wait()
        if fail:
            raise SQLAlchemyError("order_items unavailable")
        return await original(db, order_id, lines)

    monkeypatch.setattr(gateway, "insert_order_items", gated)
    return reached, release


async def test_cancelled_checkout_still_commits(
    settlement, gateway, restaurant, cart, user_id, points_config, count_rows, monkeypatch
):
    reached, release = _gate_items(monkeypatch, gateway)

    checkout = asyncio.create_task(
        settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")
    )
    await reached.wait()
    checkout.cancel()
    with pytest.raises(asyncio.CancelledError):
        await checkout
    release.set()

    async def committed():
        return await count_rows(PointsHistory) == 1

    assert await _eventually(committed)
    assert await count_rows(Order) == 1
    assert await count_rows(OrderItem) == 2
    assert await _balance(gateway, user_id) == 10


async def test_failure_after_cancellation_is_logged(
    settlement, gateway, restaurant, cart, user_id, count_rows, monkeypatch, caplog
):
    caplog.set_level(logging.INFO, logger="storefront.services.settlement")
    reached, release = _gate_items(monkeypatch, gateway, fail=True)

    checkout = asyncio.create_task(
        settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")
    )
    await reached.wait()
    checkout.cancel()
    with pytest.raises(asyncio.CancelledError):
        await checkout
    release.set()

    async def reported():
        return any("Detached settlement failed" in r.getMessage() for r in caplog.records)

    assert await _eventually(reported)
    assert await count_rows(Order) == 0


# ── Order number collisions ──────────────────────────────────────────────────


async def test_order_number_collision_is_retried(
    settlement, gateway, restaurant, cart, user_id, monkeypatch
):
    first = await settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")

    real_next = gateway.next_order_number
    stale = [first.order_number]

    async def racing_next(db):
        # another checkout took this number between the read and the insert
        return stale.pop() if stale else await real_next(db)

    monkeypatch.setattr(gateway, "next_order_number", racing_next)
    second = await settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")
    assert second.order_number == first.order_number + 1


async def test_persistent_order_number_collision_fails(
    settlement, gateway, restaurant, cart, user_id, count_rows, monkeypatch
):
    first = await settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")

    async def always_taken(db):
        return first.order_number

    monkeypatch.setattr(gateway, "next_order_number", always_taken)
    with pytest.raises(OrderPersistenceFailure) as info:
        await settlement.confirm_order(user_id, cart, restaurant, "pickup", "cash")
    assert info.value.step == "persist_order"
    assert await count_rows(Order) == 1
