"""Pydantic schemas for the address book and address eligibility."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.services.geo import Coordinate, coordinate_or_none


class AddressCreate(BaseModel):
    """Body for POST /addresses."""

    street: str = Field(..., min_length=1)
    number: str = Field(..., min_length=1, max_length=20)
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=2, max_length=2)
    zip_code: str = Field(..., min_length=8, max_length=9)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_default: bool = False


class AddressRead(BaseModel):
    """A saved address."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: uuid.UUID
    street: str
    number: str
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: str
    state: str
    zip_code: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: bool = False
    created_at: Optional[datetime] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return coordinate_or_none(self.latitude, self.longitude)

    def freeform(self) -> str:
        """Single-line form used for geocoding."""
        return f"{self.street}, {self.number}, {self.city}, {self.state}"


class AddressSnapshot(BaseModel):
    """
    Copy of an address embedded in an order. Detached from the addresses table:
    editing or deleting the source address never changes a stored snapshot.
    """

    street: str
    number: str
    complement: Optional[str] = None
    neighborhood: Optional[str] = None
    city: str
    state: str
    zip_code: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_address(cls, address: AddressRead) -> "AddressSnapshot":
        return cls.model_validate(
            address.model_dump(include=set(cls.model_fields))
        )


class AddressEligibility(BaseModel):
    """An address annotated with eligibility against one restaurant."""

    address: AddressRead
    eligible: bool
    distance_km: Optional[float] = None


class AddressEligibilityResponse(BaseModel):
    """Response for GET /restaurants/{id}/addresses."""

    restaurant_id: int
    addresses: list[AddressEligibility] = Field(default_factory=list)
    best_address_id: Optional[int] = None
