"""Restaurant and Product ORM models — shared reference data."""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Double, ForeignKey, Integer,
    Numeric, String, Text, TIMESTAMP, func,
)
from sqlalchemy.orm import relationship

from storefront.database import Base


class Restaurant(Base):
    """
    A restaurant on the storefront.
    latitude/longitude may be NULL when the address was never geocoded; such a
    restaurant cannot deliver anywhere until coordinates are filled in.
    """

    __tablename__ = "restaurants"
    __table_args__ = (
        CheckConstraint("delivery_radius > 0", name="ck_restaurants_radius_positive"),
        CheckConstraint("delivery_fee >= 0", name="ck_restaurants_fee_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    category = Column(String(50), nullable=True)

    street = Column(Text, nullable=True)
    number = Column(String(20), nullable=True)
    city = Column(Text, nullable=True)
    state = Column(String(2), nullable=True)
    postal_code = Column(String(9), nullable=True)

    latitude = Column(Double, nullable=True)
    longitude = Column(Double, nullable=True)

    delivery_radius = Column(Double, nullable=False, server_default="5")  # km
    delivery_fee = Column(Numeric(10, 2), nullable=False, server_default="0")

    # Mean of order_reviews.rating, maintained by services.ratings
    rating = Column(Numeric(3, 1), nullable=False, server_default="0")

    is_active = Column(Boolean, nullable=False, server_default="1")
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    products = relationship(
        "Product", back_populates="restaurant", cascade="all, delete-orphan"
    )


class Product(Base):
    """A menu item. Its price is copied into order_items at checkout."""

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(50), nullable=True)
    is_available = Column(Boolean, nullable=False, server_default="1")
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    restaurant = relationship("Restaurant", back_populates="products")
