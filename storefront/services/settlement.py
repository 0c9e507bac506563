"""
OrderSettlementService — turns a confirmed cart into a durable order.

Steps (each failure aborts the later ones and names the failed step):
  validate               cart not empty, cart opened for this restaurant,
                         delivery address present and in range
  compute_totals         current prices of the cart's products → totals
  persist_order          order row, fresh order number, address snapshot
  persist_items          one order_items row per priced cart line
  load_points_config     active points_config row
  upsert_points_account  balance += points_per_order, expiry refreshed
  append_points_history  'order' entry referencing the order id

persist_order … append_points_history share one transaction. The three points
steps run inside a SAVEPOINT: when any of them fails the savepoint is rolled
back, the failure is logged, and the order and its items still commit.
SettlementReconciler retries those orders later.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.errors import (
    CartRestaurantMismatch,
    EmptyCart,
    IneligibleAddress,
    OrderPersistenceFailure,
    SettlementError,
)
from storefront.models import Order
from storefront.schemas.address import AddressRead, AddressSnapshot
from storefront.schemas.order import OrderConfirmation
from storefront.schemas.restaurant import RestaurantRead
from storefront.services.cart import CartLedger
from storefront.services.eligibility import EligibilityEvaluator
from storefront.services.gateway import PersistenceGateway
from storefront.services.points import PointsLedger

logger = logging.getLogger(__name__)

_DELIVERY_TYPES = ("delivery", "pickup")
_PAYMENT_METHODS = ("credit_card", "cash")


def _report_detached_settlement(task: "asyncio.Future[OrderConfirmation]") -> None:
    """Outcome of a settlement whose caller went away; nobody else reads it."""
    if task.cancelled():
        logger.error("Detached settlement was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Detached settlement failed: %s", exc)
    else:
        logger.info("Detached settlement committed order %s", task.result().order_id)


class OrderSettlementService:
    """Settles one checkout at a time for one user."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        points_ledger: Optional[PointsLedger] = None,
        evaluator: Optional[EligibilityEvaluator] = None,
    ) -> None:
        self._gateway = gateway
        self._ledger = points_ledger or PointsLedger(gateway)
        self._evaluator = evaluator or EligibilityEvaluator()

    async def confirm_order(
        self,
        user_id: uuid.UUID,
        cart: CartLedger,
        restaurant: RestaurantRead,
        delivery_type: str,
        payment_method: str,
        notes: Optional[str] = None,
        delivery_address: Optional[AddressRead] = None,
    ) -> OrderConfirmation:
        """
        Validate, persist and credit points for a checkout.

        Raises EmptyCart / IneligibleAddress / CartRestaurantMismatch before
        anything is written, and OrderPersistenceFailure when the order could
        not be stored (nothing is committed in that case). Points failures are
        reported through OrderConfirmation.points_credited, never raised.
        """
        self._validate(user_id, cart, restaurant, delivery_type, payment_method, delivery_address)

        snapshot = (
            AddressSnapshot.from_address(delivery_address)
            if delivery_type == "delivery"
            else None
        )

        # Once persistence starts the sequence runs to completion or explicit
        # failure even if the calling request is cancelled.
        settling = asyncio.ensure_future(
            self._settle(
                user_id=user_id,
                cart=cart,
                restaurant=restaurant,
                delivery_type=delivery_type,
                payment_method=payment_method,
                notes=notes,
                snapshot=snapshot,
            )
        )
        try:
            return await asyncio.shield(settling)
        except asyncio.CancelledError:
            logger.warning(
                "Checkout for user %s cancelled by caller; settlement continues", user_id
            )
            settling.add_done_callback(_report_detached_settlement)
            raise

    # ── Validation ───────────────────────────────────────────────────────────

    def _validate(
        self,
        user_id: uuid.UUID,
        cart: CartLedger,
        restaurant: RestaurantRead,
        delivery_type: str,
        payment_method: str,
        delivery_address: Optional[AddressRead],
    ) -> None:
        if delivery_type not in _DELIVERY_TYPES:
            raise SettlementError(f"Unknown delivery type {delivery_type!r}")
        if payment_method not in _PAYMENT_METHODS:
            raise SettlementError(f"Unknown payment method {payment_method!r}")
        if cart.is_empty:
            raise EmptyCart()
        if cart.restaurant_id is not None and cart.restaurant_id != restaurant.id:
            raise CartRestaurantMismatch(
                f"Cart belongs to restaurant {cart.restaurant_id}, not {restaurant.id}"
            )

        if delivery_type != "delivery":
            return
        if delivery_address is None:
            raise IneligibleAddress("Delivery requires an address")
        if delivery_address.user_id != user_id:
            raise IneligibleAddress("Address does not belong to this user")
        # The UI pre-filters addresses; checked again here regardless.
        if not self._evaluator.is_eligible(restaurant, delivery_address):
            raise IneligibleAddress(
                f"Restaurant {restaurant.id} does not deliver to address {delivery_address.id}"
            )

    # ── Settlement ───────────────────────────────────────────────────────────

    async def _settle(
        self,
        user_id: uuid.UUID,
        cart: CartLedger,
        restaurant: RestaurantRead,
        delivery_type: str,
        payment_method: str,
        notes: Optional[str],
        snapshot: Optional[AddressSnapshot],
    ) -> OrderConfirmation:
        try:
            async with self._gateway.transaction() as db:
                try:
                    products = await self._gateway.get_products(
                        db, restaurant.id, cart.quantities
                    )
                except SQLAlchemyError as exc:
                    raise OrderPersistenceFailure(
                        "Could not load cart products", step="compute_totals"
                    ) from exc

                lines = cart.priced_lines(products)
                if not lines:
                    raise EmptyCart(
                        "Cart has no purchasable products", step="compute_totals"
                    )
                totals = cart.total(products, restaurant.delivery_fee, delivery_type).rounded()

                try:
                    order = await self._gateway.insert_order(
                        db,
                        user_id=user_id,
                        restaurant_id=restaurant.id,
                        subtotal=totals.subtotal,
                        delivery_fee=totals.delivery_fee,
                        total_amount=totals.total,
                        delivery_type=delivery_type,
                        payment_method=payment_method,
                        notes=notes,
                        delivery_address=snapshot.model_dump() if snapshot else None,
                    )
                except SQLAlchemyError as exc:
                    raise OrderPersistenceFailure(
                        "Order record could not be stored", step="persist_order"
                    ) from exc

                try:
                    await self._gateway.insert_order_items(db, order.id, lines)
                except SQLAlchemyError as exc:
                    raise OrderPersistenceFailure(
                        f"Items for order {order.id} could not be stored",
                        step="persist_items",
                    ) from exc

                awarded = await self._credit_points(db, user_id, order)
        except SQLAlchemyError as exc:
            logger.error("Order commit failed for user %s: %s", user_id, exc)
            raise OrderPersistenceFailure(
                "Order could not be committed", step="commit"
            ) from exc
        except OrderPersistenceFailure as exc:
            logger.error(
                "Settlement failed at step %s for user %s: %s", exc.step, user_id, exc
            )
            raise

        logger.info(
            "Order #%s confirmed (id=%s, user=%s, restaurant=%s, total=%s, items=%d)",
            order.order_number, order.id, user_id, restaurant.id, totals.total, len(lines),
        )

        return OrderConfirmation(
            order_id=order.id,
            order_number=order.order_number,
            subtotal=totals.subtotal,
            delivery_fee=totals.delivery_fee,
            total=totals.total,
            delivery_type=delivery_type,
            payment_method=payment_method,
            delivery_address=snapshot,
            points_credited=awarded is not None,
            points_awarded=awarded or 0,
        )

    async def _credit_points(
        self, db: AsyncSession, user_id: uuid.UUID, order: Order
    ) -> Optional[int]:
        """
        Run the points steps in a savepoint.
        Returns the points awarded, or None when crediting failed.
        """
        try:
            async with db.begin_nested():
                entry = await self._ledger.credit_order(
                    db, user_id, order.id, order.order_number
                )
        except Exception as exc:
            step = getattr(exc, "step", "points")
            logger.error(
                "Points crediting failed for order %s at step %s: %s; order kept",
                order.id, step, exc,
            )
            return None
        return entry.points if entry is not None else 0
