"""
Shared router dependencies: caller identity, service token, and the services
built around the gateway stored on app.state by the lifespan handler.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Header, HTTPException, Request, status

from storefront.config import settings
from storefront.services.addresses import AddressBook
from storefront.services.eligibility import EligibilityEvaluator
from storefront.services.gateway import PersistenceGateway
from storefront.services.geocoding import AddressResolver
from storefront.services.points import PointsLedger
from storefront.services.reconciliation import SettlementReconciler
from storefront.services.reviews import ReviewService
from storefront.services.settlement import OrderSettlementService

_evaluator = EligibilityEvaluator()


def get_user_id(x_user_id: str = Header(..., alias="X-User-ID")) -> uuid.UUID:
    """
    The host's auth layer puts the authenticated user's id in X-User-ID.
    It is trusted as-is; only the format is checked here.
    """
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user ID format, must be a UUID",
            headers={"X-Error-Code": "MISSING_USER_ID"},
        )


async def verify_service_token(
    x_service_token: str = Header(..., alias="X-Service-Token"),
) -> None:
    """Verify that the inter-service token matches the configured secret."""
    if x_service_token != settings.service_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_gateway(request: Request) -> PersistenceGateway:
    return request.app.state.gateway


def get_resolver(request: Request) -> Optional[AddressResolver]:
    return getattr(request.app.state, "resolver", None)


def get_evaluator() -> EligibilityEvaluator:
    return _evaluator


def get_address_book(request: Request) -> AddressBook:
    return AddressBook(get_gateway(request), get_resolver(request))


def get_points_ledger(request: Request) -> PointsLedger:
    return PointsLedger(get_gateway(request))


def get_settlement_service(request: Request) -> OrderSettlementService:
    gateway = get_gateway(request)
    return OrderSettlementService(gateway, PointsLedger(gateway), _evaluator)


def get_review_service(request: Request) -> ReviewService:
    return ReviewService(get_gateway(request))


def get_reconciler(request: Request) -> SettlementReconciler:
    return SettlementReconciler(get_gateway(request))


def error_response(exc: Exception, status_code: int, detail: str) -> HTTPException:
    """Generic user-facing message; the error code goes in X-Error-Code."""
    return HTTPException(
        status_code=status_code,
        detail=detail,
        headers={"X-Error-Code": getattr(exc, "code", "STOREFRONT_ERROR")},
    )
