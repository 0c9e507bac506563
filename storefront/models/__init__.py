"""SQLAlchemy ORM models package."""

from storefront.database import Base
from storefront.models.restaurant import Restaurant, Product
from storefront.models.address import Address
from storefront.models.order import Order, OrderItem, OrderReview
from storefront.models.points import PointsConfig, UserPoints, PointsHistory

__all__ = [
    "Base", "Restaurant", "Product", "Address",
    "Order", "OrderItem", "OrderReview",
    "PointsConfig", "UserPoints", "PointsHistory",
]
