"""Pydantic schemas for the points ledger and reconciliation reports."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ActionType = Literal["order", "review", "referral", "expiration"]


class PointsBalance(BaseModel):
    """Response for GET /points."""

    user_id: uuid.UUID
    total_points: int = 0
    points_expiration_date: Optional[datetime] = None


class PointsHistoryEntry(BaseModel):
    """A single ledger movement."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: uuid.UUID
    points: int
    action_type: ActionType
    reference_id: Optional[str] = None
    description: str = ""
    created_at: Optional[datetime] = None


class PointsHistoryResponse(BaseModel):
    entries: list[PointsHistoryEntry]
    limit: int
    offset: int


class BalanceMismatch(BaseModel):
    """A user whose denormalised balance disagrees with their history sum."""

    user_id: uuid.UUID
    total_points: int
    history_sum: int


class ReconciliationReport(BaseModel):
    """Integrity report produced by SettlementReconciler.report()."""

    orders_missing_points: list[int] = Field(default_factory=list)
    orders_without_items: list[int] = Field(default_factory=list)
    balance_mismatches: list[BalanceMismatch] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.orders_missing_points
            or self.orders_without_items
            or self.balance_mismatches
        )
