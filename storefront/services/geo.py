"""
GeoDistance — great-circle distance between two coordinates.
Pure functions, no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from storefront.errors import InvalidCoordinate

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point. Range checks happen in haversine_km, not here."""

    latitude: float
    longitude: float


def coordinate_or_none(
    latitude: Optional[float], longitude: Optional[float]
) -> Optional[Coordinate]:
    """Build a Coordinate, or None when either component is missing."""
    if latitude is None or longitude is None:
        return None
    return Coordinate(latitude=float(latitude), longitude=float(longitude))


def validate_coordinate(coord: Coordinate) -> None:
    """Raise InvalidCoordinate when latitude/longitude fall outside WGS84 ranges."""
    if not -90.0 <= coord.latitude <= 90.0:
        raise InvalidCoordinate(f"latitude out of range: {coord.latitude}")
    if not -180.0 <= coord.longitude <= 180.0:
        raise InvalidCoordinate(f"longitude out of range: {coord.longitude}")


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Full-precision haversine distance in kilometres. Use for threshold checks."""
    validate_coordinate(a)
    validate_coordinate(b)

    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Distance rounded to 2 decimals, for display only."""
    return round(haversine_km(a, b), 2)
