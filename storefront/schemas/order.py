"""Pydantic schemas for checkout, order history and reviews."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.schemas.address import AddressSnapshot

DeliveryType = Literal["delivery", "pickup"]
PaymentMethod = Literal["credit_card", "cash"]


class CheckoutRequest(BaseModel):
    """Body for POST /orders: the client-side cart at confirmation time."""

    restaurant_id: int
    items: dict[int, int] = Field(..., description="product_id -> quantity")
    delivery_type: DeliveryType
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=500)
    address_id: Optional[int] = None


class OrderConfirmation(BaseModel):
    """Result of a successful settlement, rendered by the confirmation screen."""

    order_id: int
    order_number: int
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal
    delivery_type: DeliveryType
    payment_method: PaymentMethod
    delivery_address: Optional[AddressSnapshot] = None

    # False when points crediting failed; the order itself stands
    points_credited: bool = False
    points_awarded: int = 0


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    quantity: int
    unit_price: Decimal


class ReviewCreate(BaseModel):
    """Body for POST /orders/{id}/review."""

    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class ReviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    restaurant_id: int
    rating: int
    comment: Optional[str] = None


class OrderRead(BaseModel):
    """An order in the user's history."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: int
    restaurant_id: int
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal
    delivery_type: DeliveryType
    payment_method: PaymentMethod
    notes: Optional[str] = None
    delivery_address: Optional[AddressSnapshot] = None
    created_at: Optional[datetime] = None
    items: list[OrderItemRead] = Field(default_factory=list)
    review: Optional[ReviewRead] = None


class OrderListResponse(BaseModel):
    """Paginated order history for GET /orders."""

    orders: list[OrderRead]
    total: int
    limit: int
    offset: int
