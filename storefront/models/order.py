"""Order, OrderItem and OrderReview ORM models."""

from sqlalchemy import (
    CheckConstraint, Column, ForeignKey, Integer, JSON, Numeric,
    String, Text, TIMESTAMP, Uuid, func,
)
from sqlalchemy.orm import relationship

from storefront.database import Base


class Order(Base):
    """
    A confirmed checkout. Immutable once written, apart from an optional review.

    delivery_address holds a copy of the address fields at order time (NULL for
    pickup); later edits or deletes of the user's address cannot change it.
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "delivery_type IN ('delivery', 'pickup')", name="ck_orders_delivery_type"
        ),
        CheckConstraint(
            "payment_method IN ('credit_card', 'cash')", name="ck_orders_payment_method"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(Integer, nullable=False, unique=True)
    user_id = Column(Uuid, nullable=False, index=True)
    restaurant_id = Column(
        Integer, ForeignKey("restaurants.id"), nullable=False, index=True
    )

    subtotal = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False, server_default="0")
    total_amount = Column(Numeric(10, 2), nullable=False)

    delivery_type = Column(String(20), nullable=False)
    payment_method = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    delivery_address = Column(JSON, nullable=True)

    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )
    review = relationship("OrderReview", back_populates="order", uselist=False)


class OrderItem(Base):
    """One line of an order; unit_price is the product price at checkout."""

    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderReview(Base):
    """A user's rating of a past order. At most one per order."""

    __tablename__ = "order_reviews"
    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_order_reviews_rating"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    restaurant_id = Column(
        Integer, ForeignKey("restaurants.id"), nullable=False, index=True
    )
    user_id = Column(Uuid, nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    order = relationship("Order", back_populates="review")
