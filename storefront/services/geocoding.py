"""
AddressResolver — free-form address → Coordinate via Nominatim.

Every failure mode (timeout, HTTP error, malformed payload, no match) comes
back as None, the "coordinates unavailable" state. Eligibility then treats the
address as non-deliverable; nothing in the order flow aborts because of it.

Calls are serialised behind a lock with a minimum interval between requests
(Nominatim allows one per second); the timeout bounds each caller's whole wait,
queueing included. Results are kept in a TTLCache keyed by
the normalised query.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Optional

import requests
from cachetools import TTLCache

from storefront.config import Settings
from storefront.errors import ResolverUnavailable
from storefront.schemas.address import AddressRead
from storefront.services.geo import Coordinate

logger = logging.getLogger(__name__)


def _cache_key(query: str) -> str:
    normalised = " ".join(query.lower().split())
    return hashlib.sha256(normalised.encode()).hexdigest()[:16]


class AddressResolver:
    """Injected geocoding capability. One instance per process."""

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org/search",
        user_agent: str = "storefront/1.0",
        timeout_seconds: float = 8.0,
        min_interval_seconds: float = 1.0,
        cache_ttl_seconds: int = 86_400,
        country: str = "Brasil",
    ) -> None:
        self.base_url = base_url
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self.min_interval_seconds = min_interval_seconds
        self.country = country
        self._cache: TTLCache = TTLCache(maxsize=5_000, ttl=cache_ttl_seconds)
        self._lock = asyncio.Lock()
        self._last_call = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "AddressResolver":
        return cls(
            base_url=settings.geocoder_url,
            user_agent=settings.geocoder_user_agent,
            timeout_seconds=settings.geocoder_timeout_seconds,
            min_interval_seconds=settings.geocoder_min_interval_seconds,
            cache_ttl_seconds=settings.geocoder_cache_ttl_seconds,
        )

    async def resolve_address(self, address: AddressRead) -> Optional[Coordinate]:
        return await self.resolve(f"{address.freeform()}, {self.country}")

    async def resolve(self, freeform: str) -> Optional[Coordinate]:
        """Coordinates for freeform, or None when they cannot be obtained."""
        if not freeform or not freeform.strip():
            return None

        key = _cache_key(freeform)
        if key in self._cache:
            logger.debug("Geocode cache HIT (key=%s)", key)
            return self._cache[key]

        try:
            coordinate = await self._fetch(freeform)
        except ResolverUnavailable as exc:
            # Not cached: the next attempt may succeed
            logger.warning("Geocoding unavailable for %r: %s", freeform, exc)
            return None

        self._cache[key] = coordinate
        return coordinate

    async def _fetch(self, freeform: str) -> Optional[Coordinate]:
        # The deadline covers queueing behind the lock and the rate-limit
        # pause as well as the HTTP call itself.
        try:
            payload = await asyncio.wait_for(
                self._throttled_request(freeform), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise ResolverUnavailable(
                f"no answer within {self.timeout_seconds}s"
            ) from exc
        except requests.RequestException as exc:
            raise ResolverUnavailable(str(exc)) from exc

        if not payload:
            logger.info("No geocoding match for %r", freeform)
            return None
        try:
            return Coordinate(
                latitude=float(payload[0]["lat"]),
                longitude=float(payload[0]["lon"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ResolverUnavailable(f"malformed geocoder payload: {exc}") from exc

    async def _throttled_request(self, freeform: str) -> list:
        async with self._lock:
            wait = self.min_interval_seconds - (time.monotonic() - self._last_call)
            if wait > 0:
                await asyncio.sleep(wait)
            try:
                return await asyncio.to_thread(self._request, freeform)
            finally:
                self._last_call = time.monotonic()

    def _request(self, freeform: str) -> list:
        """Blocking HTTP call; runs in a worker thread."""
        response = requests.get(
            self.base_url,
            params={"q": freeform, "format": "json", "limit": 1},
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()
