"""Loyalty points ORM models: configuration, running balance, and history."""

from sqlalchemy import (
    BigInteger, CheckConstraint, Column, Integer, String, Text,
    TIMESTAMP, UniqueConstraint, Uuid, func,
)

from storefront.database import Base


class PointsConfig(Base):
    """Points rules. The most recently created row is the active one."""

    __tablename__ = "points_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    points_per_order = Column(Integer, nullable=False)
    points_per_review = Column(Integer, nullable=False)
    points_per_referral = Column(Integer, nullable=False)
    points_expiration_days = Column(Integer, nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )


class UserPoints(Base):
    """
    Denormalised running balance, one row per user.
    total_points must always equal the sum of that user's points_history rows.
    """

    __tablename__ = "user_points"
    __table_args__ = (
        CheckConstraint("total_points >= 0", name="ck_user_points_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=False, unique=True)
    total_points = Column(Integer, nullable=False, server_default="0")
    points_expiration_date = Column(TIMESTAMP(timezone=True), nullable=True)
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class PointsHistory(Base):
    """Append-only audit trail of every points movement."""

    __tablename__ = "points_history"
    __table_args__ = (
        CheckConstraint(
            "action_type IN ('order', 'review', 'referral', 'expiration')",
            name="ck_points_history_action_type",
        ),
        # NULL reference ids never collide, so expirations are unaffected
        UniqueConstraint(
            "user_id", "action_type", "reference_id",
            name="uq_points_history_reference",
        ),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=False, index=True)
    points = Column(Integer, nullable=False)
    action_type = Column(String(20), nullable=False)
    reference_id = Column(String(64), nullable=True)
    description = Column(Text, nullable=False, server_default="")
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
