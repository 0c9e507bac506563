"""
Address book endpoints, plus restaurant screening for one address.
The caller is identified by the X-User-ID header.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from storefront.errors import AddressNotFound
from storefront.routers.deps import (
    get_address_book,
    get_evaluator,
    get_gateway,
    get_user_id,
)
from storefront.schemas.address import AddressCreate, AddressRead
from storefront.schemas.restaurant import RestaurantEligibility
from storefront.services.addresses import AddressBook
from storefront.services.eligibility import EligibilityEvaluator
from storefront.services.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/addresses", tags=["addresses"])


def _not_found(exc: AddressNotFound) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Address not found",
        headers={"X-Error-Code": exc.code},
    )


@router.get("", response_model=list[AddressRead])
async def list_addresses(
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
) -> list[AddressRead]:
    """The caller's addresses, default first, then newest first."""
    return await book.list_addresses(user_id)


@router.post("", response_model=AddressRead, status_code=status.HTTP_201_CREATED)
async def create_address(
    body: AddressCreate,
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
) -> AddressRead:
    return await book.create_address(user_id, body)


@router.put("/{address_id}/default", response_model=AddressRead)
async def set_default_address(
    address_id: int,
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
) -> AddressRead:
    try:
        return await book.set_default(user_id, address_id)
    except AddressNotFound as exc:
        raise _not_found(exc)


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: int,
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
) -> Response:
    try:
        await book.delete_address(user_id, address_id)
    except AddressNotFound as exc:
        raise _not_found(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{address_id}/geocode", response_model=AddressRead)
async def geocode_address(
    address_id: int,
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
) -> AddressRead:
    """Retry geocoding for an address saved without coordinates."""
    try:
        return await book.refresh_coordinates(user_id, address_id)
    except AddressNotFound as exc:
        raise _not_found(exc)


@router.get("/{address_id}/restaurants", response_model=list[RestaurantEligibility])
async def restaurants_for_address(
    address_id: int,
    eligible_only: bool = False,
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
    gateway: PersistenceGateway = Depends(get_gateway),
    evaluator: EligibilityEvaluator = Depends(get_evaluator),
) -> list[RestaurantEligibility]:
    """Every active restaurant, in listing order, with eligibility for this address."""
    try:
        address = await book.get_address(user_id, address_id)
    except AddressNotFound as exc:
        raise _not_found(exc)

    async with gateway.session() as db:
        restaurants = await gateway.list_restaurants(db)

    screened = await evaluator.screen_restaurants(restaurants, address)
    if eligible_only:
        screened = [s for s in screened if s.eligible]
    return screened
