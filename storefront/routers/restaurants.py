"""Restaurant-side eligibility: which of the caller's addresses can be served."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.routers.deps import (
    get_address_book,
    get_evaluator,
    get_gateway,
    get_user_id,
)
from storefront.schemas.address import AddressEligibilityResponse
from storefront.services.addresses import AddressBook
from storefront.services.eligibility import EligibilityEvaluator
from storefront.services.gateway import PersistenceGateway

router = APIRouter(prefix="/restaurants", tags=["restaurants"])


@router.get("/{restaurant_id}/addresses", response_model=AddressEligibilityResponse)
async def addresses_for_restaurant(
    restaurant_id: int,
    user_id: uuid.UUID = Depends(get_user_id),
    book: AddressBook = Depends(get_address_book),
    gateway: PersistenceGateway = Depends(get_gateway),
    evaluator: EligibilityEvaluator = Depends(get_evaluator),
) -> AddressEligibilityResponse:
    """
    The caller's addresses annotated for this restaurant, plus the address the
    checkout should pre-select (best_address_id is null when none qualifies).
    Evaluated fresh on every call.
    """
    async with gateway.session() as db:
        restaurant = await gateway.get_restaurant(db, restaurant_id)
    if restaurant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Restaurant not found",
        )

    addresses = await book.list_addresses(user_id)
    best = evaluator.select_best_address(restaurant, addresses)
    return AddressEligibilityResponse(
        restaurant_id=restaurant.id,
        addresses=evaluator.annotate_addresses(restaurant, addresses),
        best_address_id=best.id if best else None,
    )
