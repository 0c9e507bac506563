"""Pydantic schemas package."""

from storefront.schemas.restaurant import (
    ProductRead,
    RestaurantEligibility,
    RestaurantRead,
)
from storefront.schemas.address import (
    AddressCreate,
    AddressEligibility,
    AddressEligibilityResponse,
    AddressRead,
    AddressSnapshot,
)
from storefront.schemas.order import (
    CheckoutRequest,
    OrderConfirmation,
    OrderItemRead,
    OrderListResponse,
    OrderRead,
    ReviewCreate,
    ReviewRead,
)
from storefront.schemas.points import (
    BalanceMismatch,
    PointsBalance,
    PointsHistoryEntry,
    PointsHistoryResponse,
    ReconciliationReport,
)

__all__ = [
    "ProductRead", "RestaurantEligibility", "RestaurantRead",
    "AddressCreate", "AddressEligibility", "AddressEligibilityResponse",
    "AddressRead", "AddressSnapshot",
    "CheckoutRequest", "OrderConfirmation", "OrderItemRead",
    "OrderListResponse", "OrderRead", "ReviewCreate", "ReviewRead",
    "BalanceMismatch", "PointsBalance", "PointsHistoryEntry",
    "PointsHistoryResponse", "ReconciliationReport",
]
