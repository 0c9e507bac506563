"""
Storefront — FastAPI application entry point.

The lifespan handler owns the database engine: it builds the engine, wraps its
session factory in the PersistenceGateway every router depends on, creates the
tables and checks connectivity before the first request is served.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.config import settings
from storefront.database import build_engine, build_session_factory, create_tables
from storefront.errors import StorefrontError
from storefront.routers import addresses, admin, health, orders, points, restaurants
from storefront.services.gateway import PersistenceGateway
from storefront.services.geocoding import AddressResolver

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Starting Storefront (env=%s, geocoder=%s)",
        settings.app_env, settings.geocoder_url,
    )

    engine = build_engine(settings.database_url, echo=(settings.app_env == "development"))
    gateway = PersistenceGateway(build_session_factory(engine))
    await create_tables(engine)

    if await gateway.ping():
        logger.info("Database ready.")
    else:
        # Keep serving; /ready reports 503 until the database answers
        logger.error("Database connectivity check FAILED at startup.")

    app.state.gateway = gateway
    app.state.resolver = AddressResolver.from_settings(settings)
    try:
        yield
    finally:
        logger.info("Shutting down Storefront.")
        await engine.dispose()


app = FastAPI(
    title="Storefront",
    description="Delivery eligibility, checkout settlement and loyalty points for the food storefront.",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Error-Code"],
)

# ── Routers ──────────────────────────────────────────────────────────────────

for module in (health, addresses, restaurants, orders, points, admin):
    app.include_router(module.router)


# ── Exception handlers ───────────────────────────────────────────────────────

@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Domain errors a router did not map itself."""
    logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={"detail": "Request could not be completed", "code": exc.code},
        headers={"X-Error-Code": exc.code},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "STOREFRONT_UNAVAILABLE"},
    )
