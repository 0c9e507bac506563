"""
Error taxonomy for eligibility, settlement, points and reviews.

Every error carries a machine-readable `code` that routers copy into the
X-Error-Code response header. End users only ever see a generic message;
the taxonomy is for diagnostics and tests.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for all domain errors."""

    code = "STOREFRONT_ERROR"


class InvalidCoordinate(StorefrontError, ValueError):
    """Latitude or longitude outside its valid range."""

    code = "INVALID_COORDINATE"


# ── Settlement ───────────────────────────────────────────────────────────────


class SettlementError(StorefrontError):
    """
    A checkout could not be settled.
    `step` names the settlement step that failed.
    """

    code = "SETTLEMENT_FAILED"

    def __init__(self, message: str, step: str = "validate") -> None:
        super().__init__(message)
        self.step = step


class EmptyCart(SettlementError):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty", step: str = "validate") -> None:
        super().__init__(message, step)


class IneligibleAddress(SettlementError):
    code = "INELIGIBLE_ADDRESS"


class CartRestaurantMismatch(SettlementError):
    code = "CART_RESTAURANT_MISMATCH"


class OrderPersistenceFailure(SettlementError):
    """Order or order items could not be stored. Nothing was committed."""

    code = "ORDER_PERSISTENCE_FAILURE"


class PointsCreditFailure(StorefrontError):
    """
    Points could not be credited. Never fatal for an order: the caller logs
    it and reconciliation picks the order up later.
    """

    code = "POINTS_CREDIT_FAILURE"

    def __init__(self, message: str, step: str) -> None:
        super().__init__(message)
        self.step = step


# ── Geocoding ────────────────────────────────────────────────────────────────


class ResolverUnavailable(StorefrontError):
    """The geocoding service timed out or failed. Treated as missing coordinates."""

    code = "RESOLVER_UNAVAILABLE"


# ── Reviews ──────────────────────────────────────────────────────────────────


class ReviewError(StorefrontError):
    code = "REVIEW_FAILED"


class OrderNotFound(ReviewError):
    code = "ORDER_NOT_FOUND"


class DuplicateReview(ReviewError):
    code = "DUPLICATE_REVIEW"


class AddressNotFound(StorefrontError):
    code = "ADDRESS_NOT_FOUND"
