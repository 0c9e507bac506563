"""
Maintenance endpoints, guarded by the X-Service-Token header.
Reconciliation of points crediting, rating recomputation, points expiry.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.errors import OrderNotFound, PointsCreditFailure
from storefront.routers.deps import get_gateway, get_reconciler, verify_service_token
from storefront.schemas.points import ReconciliationReport
from storefront.services.gateway import PersistenceGateway
from storefront.services.points import PointsLedger
from storefront.services.ratings import recompute_all_ratings
from storefront.services.reconciliation import SettlementReconciler

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_service_token)],
)


@router.get("/reconciliation", response_model=ReconciliationReport)
async def reconciliation_report(
    reconciler: SettlementReconciler = Depends(get_reconciler),
) -> ReconciliationReport:
    return await reconciler.report()


@router.post("/reconciliation/orders/{order_id}/points")
async def retry_order_points(
    order_id: int,
    reconciler: SettlementReconciler = Depends(get_reconciler),
) -> dict:
    """Credit an order's points if they are still missing (idempotent)."""
    try:
        awarded = await reconciler.retry_points_credit(order_id)
    except OrderNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    except PointsCreditFailure as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Points could not be credited",
            headers={"X-Error-Code": exc.code},
        )
    return {"order_id": order_id, "points_awarded": awarded}


@router.post("/ratings/recompute")
async def recompute_ratings(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> dict:
    async with gateway.transaction() as db:
        ratings = await recompute_all_ratings(gateway, db)
    return {"updated": len(ratings), "ratings": {str(k): str(v) for k, v in ratings.items()}}


@router.post("/points/expire")
async def expire_points(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> dict:
    ledger = PointsLedger(gateway)
    async with gateway.transaction() as db:
        expired = await ledger.expire_all(db)
    logger.info("Expired points for %d accounts", expired)
    return {"expired_accounts": expired}
