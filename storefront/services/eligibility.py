"""
EligibilityEvaluator — decides whether a restaurant can deliver to an address.

Rules:
  1. Eligible iff haversine(restaurant, address) <= restaurant.delivery_radius.
     The boundary is inclusive and the comparison uses full precision.
  2. Missing coordinates on either side → not eligible. Never an error:
     addresses saved before geocoding succeeded are a normal state.
  3. Stored coordinates outside WGS84 ranges are logged and treated the same
     way as missing ones.
  4. Nothing is cached. Callers re-run the evaluator whenever the open
     restaurant or the default address changes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, TypeVar

from storefront.errors import InvalidCoordinate
from storefront.schemas.address import AddressEligibility, AddressRead
from storefront.schemas.restaurant import RestaurantEligibility, RestaurantRead
from storefront.services.geo import Coordinate, haversine_km

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=AddressRead)


class EligibilityEvaluator:
    """Pure, stateless. Safe to share across requests and threads."""

    def distance(
        self, restaurant: RestaurantRead, address: AddressRead
    ) -> Optional[float]:
        """Full-precision distance in km, or None when it is undefined."""
        return self._distance(restaurant.coordinate, address.coordinate, restaurant.id)

    def is_eligible(self, restaurant: RestaurantRead, address: AddressRead) -> bool:
        """True iff the restaurant's delivery radius covers the address."""
        km = self.distance(restaurant, address)
        if km is None:
            return False
        return km <= restaurant.delivery_radius

    def filter_eligible(
        self, restaurant: RestaurantRead, addresses: Sequence[A]
    ) -> list[A]:
        """Eligible addresses, in the order given."""
        return [a for a in addresses if self.is_eligible(restaurant, a)]

    def select_best_address(
        self, restaurant: RestaurantRead, addresses: Sequence[A]
    ) -> Optional[A]:
        """
        Pick the address to pre-select at checkout.

        The eligible default address wins; otherwise the first eligible one.
        Callers pass addresses default-first, then newest-first (the address
        book's display order). Returns None when nothing is deliverable.
        """
        eligible = self.filter_eligible(restaurant, addresses)
        for address in eligible:
            if address.is_default:
                return address
        return eligible[0] if eligible else None

    def annotate_addresses(
        self, restaurant: RestaurantRead, addresses: Sequence[AddressRead]
    ) -> list[AddressEligibility]:
        """Every address with its eligibility and display distance."""
        annotated: list[AddressEligibility] = []
        for address in addresses:
            km = self.distance(restaurant, address)
            annotated.append(
                AddressEligibility(
                    address=address,
                    eligible=km is not None and km <= restaurant.delivery_radius,
                    distance_km=round(km, 2) if km is not None else None,
                )
            )
        return annotated

    async def screen_restaurants(
        self,
        restaurants: Sequence[RestaurantRead],
        address: AddressRead,
    ) -> list[RestaurantEligibility]:
        """
        Screen many restaurants against one address concurrently.

        Each pair is independent; asyncio.gather keeps results in the order of
        `restaurants` regardless of completion order.
        """

        def _screen(restaurant: RestaurantRead) -> RestaurantEligibility:
            km = self.distance(restaurant, address)
            return RestaurantEligibility(
                restaurant=restaurant,
                eligible=km is not None and km <= restaurant.delivery_radius,
                distance_km=round(km, 2) if km is not None else None,
            )

        return list(
            await asyncio.gather(
                *(asyncio.to_thread(_screen, r) for r in restaurants)
            )
        )

    @staticmethod
    def _distance(
        origin: Optional[Coordinate],
        destination: Optional[Coordinate],
        restaurant_id: int,
    ) -> Optional[float]:
        if origin is None or destination is None:
            return None
        try:
            return haversine_km(origin, destination)
        except InvalidCoordinate as exc:
            logger.warning(
                "Ignoring invalid coordinates for restaurant %s: %s", restaurant_id, exc
            )
            return None
