"""
AddressBook — a user's saved addresses and the single-default invariant.

Switching the default is two writes (clear the old default, set the new one).
They run in one transaction here; a store without transactions would expose a
short window where readers see zero or two defaults.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Union

from storefront.errors import AddressNotFound
from storefront.models import Address
from storefront.schemas.address import AddressCreate, AddressRead
from storefront.services.gateway import PersistenceGateway
from storefront.services.geo import Coordinate
from storefront.services.geocoding import AddressResolver

logger = logging.getLogger(__name__)


class AddressBook:
    """Address operations for one storefront; stateless between calls."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        resolver: Optional[AddressResolver] = None,
    ) -> None:
        self._gateway = gateway
        self._resolver = resolver

    async def list_addresses(self, user_id: uuid.UUID) -> list[AddressRead]:
        """Default first, then newest first."""
        async with self._gateway.session() as db:
            rows = await self._gateway.list_addresses(db, user_id)
            return [AddressRead.model_validate(r) for r in rows]

    async def get_address(self, user_id: uuid.UUID, address_id: int) -> AddressRead:
        async with self._gateway.session() as db:
            row = await self._gateway.get_address(db, user_id, address_id)
            if row is None:
                raise AddressNotFound(f"Address {address_id} not found")
            return AddressRead.model_validate(row)

    async def create_address(
        self, user_id: uuid.UUID, body: AddressCreate
    ) -> AddressRead:
        """
        Save a new address. The user's first address always becomes the
        default; a later one only when body.is_default is set.
        Coordinates are looked up when the body carries none and a resolver
        is configured; a failed lookup still saves the address.
        """
        fields = body.model_dump()
        if fields["latitude"] is None or fields["longitude"] is None:
            fields["latitude"] = fields["longitude"] = None
            coordinate = await self._resolve(body)
            if coordinate is not None:
                fields["latitude"] = coordinate.latitude
                fields["longitude"] = coordinate.longitude

        async with self._gateway.transaction() as db:
            existing = await self._gateway.list_addresses(db, user_id)
            make_default = not existing or body.is_default
            if make_default and existing:
                await self._gateway.clear_default_address(db, user_id)
            fields["is_default"] = make_default

            address = Address(user_id=user_id, **fields)
            db.add(address)
            await db.flush()
            await db.refresh(address)
            created = AddressRead.model_validate(address)

        logger.info(
            "Address %s created for user %s (default=%s, geocoded=%s)",
            created.id, user_id, created.is_default, created.coordinate is not None,
        )
        return created

    async def set_default(self, user_id: uuid.UUID, address_id: int) -> AddressRead:
        """Make address_id the user's only default address."""
        async with self._gateway.transaction() as db:
            address = await self._gateway.get_address(db, user_id, address_id)
            if address is None:
                raise AddressNotFound(f"Address {address_id} not found")
            await self._gateway.clear_default_address(db, user_id)
            await self._gateway.mark_default_address(db, user_id, address_id)
            await db.refresh(address)
            updated = AddressRead.model_validate(address)

        logger.info("Default address for user %s is now %s", user_id, address_id)
        return updated

    async def delete_address(self, user_id: uuid.UUID, address_id: int) -> None:
        """Delete an address. Orders keep their own snapshot, so none are affected."""
        async with self._gateway.transaction() as db:
            address = await self._gateway.get_address(db, user_id, address_id)
            if address is None:
                raise AddressNotFound(f"Address {address_id} not found")
            await db.delete(address)

    async def refresh_coordinates(
        self, user_id: uuid.UUID, address_id: int
    ) -> AddressRead:
        """
        Geocode a saved address again, e.g. one stored while the geocoder was
        down. Unresolved lookups leave the stored coordinates untouched.
        """
        current = await self.get_address(user_id, address_id)
        coordinate = await self._resolve(current)
        if coordinate is None:
            return current

        async with self._gateway.transaction() as db:
            address = await self._gateway.get_address(db, user_id, address_id)
            if address is None:
                raise AddressNotFound(f"Address {address_id} not found")
            address.latitude = coordinate.latitude
            address.longitude = coordinate.longitude
            await db.flush()
            await db.refresh(address)
            return AddressRead.model_validate(address)

    async def _resolve(
        self, address: Union[AddressCreate, AddressRead]
    ) -> Optional[Coordinate]:
        if self._resolver is None:
            return None
        if isinstance(address, AddressCreate):
            freeform = f"{address.street}, {address.number}, {address.city}, {address.state}"
            return await self._resolver.resolve(f"{freeform}, {self._resolver.country}")
        return await self._resolver.resolve_address(address)
