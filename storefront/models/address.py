"""Address ORM model — a user's saved delivery addresses."""

from sqlalchemy import (
    Boolean, Column, Double, Index, Integer, String, Text, TIMESTAMP, Uuid, func,
)

from storefront.database import Base


class Address(Base):
    """
    A delivery address owned by one user.
    At most one row per user has is_default = true; AddressBook.set_default
    clears the previous default and sets the new one in the same transaction.
    Orders never reference this table; they embed a snapshot.
    """

    __tablename__ = "addresses"
    __table_args__ = (
        Index("idx_addresses_user_default", "user_id", "is_default"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=False)

    street = Column(Text, nullable=False)
    number = Column(String(20), nullable=False)
    complement = Column(Text, nullable=True)
    neighborhood = Column(Text, nullable=True)
    city = Column(Text, nullable=False)
    state = Column(String(2), nullable=False)
    zip_code = Column(String(9), nullable=False)

    # NULL until geocoding succeeds
    latitude = Column(Double, nullable=True)
    longitude = Column(Double, nullable=True)

    is_default = Column(Boolean, nullable=False, server_default="0")

    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
