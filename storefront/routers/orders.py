"""
Checkout, order history and reviews.

Every settlement failure returns the same user-facing message; the specific
error code travels in the X-Error-Code header for diagnostics.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status

from storefront.errors import (
    AddressNotFound,
    DuplicateReview,
    OrderNotFound,
    OrderPersistenceFailure,
    SettlementError,
)
from storefront.routers.deps import (
    error_response,
    get_address_book,
    get_gateway,
    get_review_service,
    get_settlement_service,
    get_user_id,
)
from storefront.schemas.order import (
    CheckoutRequest,
    OrderConfirmation,
    OrderListResponse,
    OrderRead,
    ReviewCreate,
    ReviewRead,
)
from storefront.services.addresses import AddressBook
from storefront.services.cart import CartLedger
from storefront.services.gateway import PersistenceGateway
from storefront.services.reviews import ReviewService
from storefront.services.settlement import OrderSettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

ORDER_FAILED = "Order could not be completed"


@router.post("", response_model=OrderConfirmation, status_code=status.HTTP_201_CREATED)
async def confirm_order(
    body: CheckoutRequest,
    user_id: uuid.UUID = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
    book: AddressBook = Depends(get_address_book),
    settlement: OrderSettlementService = Depends(get_settlement_service),
) -> OrderConfirmation:
    """Settle the caller's cart into an order."""
    async with gateway.session() as db:
        restaurant = await gateway.get_restaurant(db, body.restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Restaurant not found",
        )

    address = None
    if body.delivery_type == "delivery" and body.address_id is not None:
        try:
            address = await book.get_address(user_id, body.address_id)
        except AddressNotFound as exc:
            raise error_response(exc, status.HTTP_422_UNPROCESSABLE_ENTITY, ORDER_FAILED)

    cart = CartLedger.from_quantities(restaurant.id, body.items)

    try:
        return await settlement.confirm_order(
            user_id=user_id,
            cart=cart,
            restaurant=restaurant,
            delivery_type=body.delivery_type,
            payment_method=body.payment_method,
            notes=body.notes,
            delivery_address=address,
        )
    except OrderPersistenceFailure as exc:
        raise error_response(exc, status.HTTP_503_SERVICE_UNAVAILABLE, ORDER_FAILED)
    except SettlementError as exc:
        logger.info("Checkout rejected for user %s: %s (%s)", user_id, exc, exc.code)
        raise error_response(exc, status.HTTP_422_UNPROCESSABLE_ENTITY, ORDER_FAILED)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user_id: uuid.UUID = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> OrderListResponse:
    """The caller's orders, newest first, with items and review."""
    async with gateway.session() as db:
        orders, total = await gateway.list_orders(db, user_id, limit, offset)
        items = [OrderRead.model_validate(o) for o in orders]
    return OrderListResponse(orders=items, total=total, limit=limit, offset=offset)


@router.post(
    "/{order_id}/review",
    response_model=ReviewRead,
    status_code=status.HTTP_201_CREATED,
)
async def review_order(
    order_id: int,
    body: ReviewCreate,
    user_id: uuid.UUID = Depends(get_user_id),
    reviews: ReviewService = Depends(get_review_service),
) -> ReviewRead:
    try:
        return await reviews.submit_review(user_id, order_id, body)
    except OrderNotFound as exc:
        raise error_response(exc, status.HTTP_404_NOT_FOUND, "Order not found")
    except DuplicateReview as exc:
        raise error_response(exc, status.HTTP_409_CONFLICT, "Order already reviewed")
