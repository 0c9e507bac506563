"""Loyalty points: balance and history for the caller."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from storefront.routers.deps import get_gateway, get_user_id
from storefront.schemas.points import (
    PointsBalance,
    PointsHistoryEntry,
    PointsHistoryResponse,
)
from storefront.services.gateway import PersistenceGateway
from storefront.services.points import PointsLedger

router = APIRouter(prefix="/points", tags=["points"])


@router.get("", response_model=PointsBalance)
async def get_balance(
    user_id: uuid.UUID = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> PointsBalance:
    async with gateway.session() as db:
        account = await gateway.get_points_account(db, user_id)
    if account is None:
        return PointsBalance(user_id=user_id)
    return PointsBalance(
        user_id=user_id,
        total_points=account.total_points,
        points_expiration_date=account.points_expiration_date,
    )


@router.get("/history", response_model=PointsHistoryResponse)
async def get_history(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: uuid.UUID = Depends(get_user_id),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> PointsHistoryResponse:
    """Ledger movements, newest first."""
    ledger = PointsLedger(gateway)
    async with gateway.session() as db:
        entries = await ledger.history(db, user_id, limit, offset)
        payload = [PointsHistoryEntry.model_validate(e) for e in entries]
    return PointsHistoryResponse(entries=payload, limit=limit, offset=offset)
