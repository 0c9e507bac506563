"""
PointsLedger — append-only history feeding a denormalised running balance.

Invariant: user_points.total_points == Σ points_history.points for every user.
Every movement therefore writes both rows in the caller's transaction, and the
history row records the delta actually applied to the balance.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.errors import PointsCreditFailure
from storefront.models import PointsConfig, PointsHistory
from storefront.services.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

ACTION_TYPES = ("order", "review", "referral", "expiration")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class PointsLedger:
    """Credits, balances and expiry for the loyalty programme."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    async def get_active_config(self, db: AsyncSession) -> PointsConfig:
        """Most recent points_config row. Missing config is a PointsCreditFailure."""
        config = await self._gateway.get_active_points_config(db)
        if config is None:
            raise PointsCreditFailure(
                "No points configuration is defined", step="load_points_config"
            )
        return config

    async def credit(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        points: int,
        action_type: str,
        reference_id: Optional[str],
        description: str,
        expiration_days: Optional[int] = None,
    ) -> Optional[PointsHistory]:
        """
        Apply a points movement and record it.

        - points must be positive, except for action_type "expiration" which
          takes a negative (or zero) amount, and "order" which may be zero to
          mark an order settled under a zero points_per_order.
        - With a reference_id the credit is idempotent: if an entry for
          (user_id, action_type, reference_id) exists, nothing is written and
          None is returned.
        - The balance never goes below 0. The history row stores the delta
          actually applied, so a clamped expiration records the smaller loss.
        - expiration_days, when given, moves the balance expiry to now + days.
        """
        if action_type not in ACTION_TYPES:
            raise ValueError(f"unknown action_type: {action_type!r}")
        if action_type == "expiration":
            if points > 0:
                raise ValueError("expiration entries cannot add points")
        elif points < 0 or (points == 0 and action_type != "order"):
            raise ValueError(f"{action_type} credits must be positive")

        if reference_id is not None:
            existing = await self._gateway.find_points_entry(
                db, user_id, action_type, reference_id
            )
            if existing is not None:
                logger.info(
                    "Points already credited (user=%s, action=%s, ref=%s)",
                    user_id, action_type, reference_id,
                )
                return None

        account = await self._gateway.get_points_account(db, user_id)
        current = account.total_points if account else 0
        new_total = max(0, current + points)
        applied = new_total - current

        expiration_date = (
            _utcnow() + timedelta(days=expiration_days)
            if expiration_days is not None
            else None
        )

        try:
            await self._gateway.upsert_points_account(
                db, user_id, new_total, expiration_date
            )
        except Exception as exc:
            raise PointsCreditFailure(
                f"Could not update points balance: {exc}", step="upsert_points_account"
            ) from exc

        try:
            entry = await self._gateway.append_points_history(
                db,
                user_id=user_id,
                points=applied,
                action_type=action_type,
                reference_id=reference_id,
                description=description,
            )
        except Exception as exc:
            raise PointsCreditFailure(
                f"Could not append points history: {exc}", step="append_points_history"
            ) from exc

        logger.info(
            "Points %+d for user %s (%s, ref=%s); balance %d → %d",
            applied, user_id, action_type, reference_id, current, new_total,
        )
        return entry

    async def credit_order(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        order_id: int,
        order_number: int,
    ) -> Optional[PointsHistory]:
        """
        Award points_per_order for one order (idempotent per order id).

        A zero or negative points_per_order still writes a 0-point entry: the
        order is settled under the rules in force now, and a later change of
        config does not credit it retroactively.
        """
        config = await self.get_active_config(db)
        points = max(config.points_per_order, 0)
        if points == 0:
            logger.info("points_per_order is %d; recording a 0-point entry", config.points_per_order)
        return await self.credit(
            db,
            user_id=user_id,
            points=points,
            action_type="order",
            reference_id=str(order_id),
            description=f"Order #{order_number}",
            expiration_days=config.points_expiration_days if points else None,
        )

    async def credit_review(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        review_id: int,
        order_number: int,
    ) -> Optional[PointsHistory]:
        """Award points_per_review for one review (idempotent per review id)."""
        config = await self.get_active_config(db)
        if config.points_per_review <= 0:
            return None
        return await self.credit(
            db,
            user_id=user_id,
            points=config.points_per_review,
            action_type="review",
            reference_id=str(review_id),
            description=f"Review of order #{order_number}",
            expiration_days=config.points_expiration_days,
        )

    async def balance(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        account = await self._gateway.get_points_account(db, user_id)
        return account.total_points if account else 0

    async def history(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[PointsHistory]:
        return await self._gateway.list_points_history(db, user_id, limit, offset)

    async def expire_points(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Optional[PointsHistory]:
        """Zero an expired balance with an 'expiration' entry. No-op otherwise."""
        now = now or _utcnow()
        account = await self._gateway.get_points_account(db, user_id)
        if (
            account is None
            or account.total_points <= 0
            or account.points_expiration_date is None
            or _as_utc(account.points_expiration_date) >= now
        ):
            return None

        return await self.credit(
            db,
            user_id=user_id,
            points=-account.total_points,
            action_type="expiration",
            reference_id=None,
            description="Points expired",
        )

    async def expire_all(self, db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Expire every account past its expiry date; returns how many were expired."""
        now = now or _utcnow()
        expired = 0
        for account in await self._gateway.expired_accounts(db, now):
            if await self.expire_points(db, account.user_id, now) is not None:
                expired += 1
        return expired
