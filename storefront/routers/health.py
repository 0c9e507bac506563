"""Liveness and readiness probes."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from storefront.routers.deps import get_gateway, get_resolver
from storefront.services.gateway import PersistenceGateway
from storefront.services.geocoding import AddressResolver

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "service": "storefront", "version": "1.0.0"}


@router.get("/ready")
async def ready(
    gateway: PersistenceGateway = Depends(get_gateway),
    resolver: Optional[AddressResolver] = Depends(get_resolver),
) -> JSONResponse:
    """
    503 while the database is unreachable. The geocoder is reported but never
    blocks readiness: addresses without coordinates are a normal state.
    """
    db_ok = await gateway.ping()
    if not db_ok:
        logger.warning("Readiness check: database unreachable")
    return JSONResponse(
        content={
            "db": "ok" if db_ok else "error",
            "geocoder": "enabled" if resolver is not None else "disabled",
        },
        status_code=200 if db_ok else 503,
    )
