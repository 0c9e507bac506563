"""Pydantic schemas for restaurants, products and eligibility results."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.services.geo import Coordinate, coordinate_or_none


class RestaurantRead(BaseModel):
    """Restaurant as seen by eligibility and settlement."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    delivery_radius: float = Field(..., gt=0)      # km
    delivery_fee: Decimal = Field(Decimal("0"), ge=0)
    rating: Optional[Decimal] = None
    is_active: bool = True

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return coordinate_or_none(self.latitude, self.longitude)


class ProductRead(BaseModel):
    """A product with its current price."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    restaurant_id: int
    name: str
    price: Decimal = Field(..., ge=0)
    category: Optional[str] = None


class RestaurantEligibility(BaseModel):
    """
    One row of a batch screening: whether `restaurant` delivers to the
    screened address. distance_km is None when either side has no coordinates.
    """

    restaurant: RestaurantRead
    eligible: bool
    distance_km: Optional[float] = None
