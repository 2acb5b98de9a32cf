"""
Main FastAPI application for the storefront backend.

Mounts every API router under /api alongside the health checks, and installs
CORS, request logging, cache headers and the JSON error envelope.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.deps import close_integration_clients
from src.api.middleware import request_context_middleware
from src.api.routes import (
    addresses,
    admin,
    cart,
    catalog,
    checkout,
    cron,
    orders,
    registry,
    search,
    webhooks,
)
from src.core.config import get_settings
from src.core.errors import register_exception_handlers
from src.core.logging import setup_logging
from src.db.session import db_healthcheck, init_db

logger = structlog.get_logger(__name__)

settings = get_settings()

openapi_tags = [
    {"name": "Health", "description": "Service and dependency health checks."},
    {"name": "Catalog", "description": "Products and categories."},
    {"name": "Search", "description": "Full-text product search."},
    {"name": "Cart", "description": "Guest and customer shopping carts."},
    {"name": "Checkout", "description": "Checkout sessions and shipping quotes."},
    {"name": "Orders", "description": "Customer orders, cancellation and refunds."},
    {"name": "Registry", "description": "Gift registries."},
    {"name": "Addresses", "description": "Saved customer addresses."},
    {"name": "Admin", "description": "Store management and dropship fulfillment."},
    {"name": "Webhooks", "description": "Payment provider callbacks."},
    {"name": "Cron", "description": "Scheduled jobs."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    setup_logging()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        stripe_configured=settings.stripe_configured,
    )
    init_db()
    yield
    close_integration_clients()
    logger.info("application_shutdown")


app = FastAPI(
    title="Storefront Backend API",
    description="Backend service for the storefront (catalog, cart, checkout, orders, registry, fulfillment).",
    version="0.2.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Cart-Session", "X-Request-ID"],
)
app.middleware("http")(request_context_middleware)

register_exception_handlers(app)

for module in (catalog, search, cart, checkout, orders, registry, addresses, admin, webhooks, cron):
    app.include_router(module.router, prefix="/api")


@app.get("/", tags=["Health"], summary="Service health check")
def health_check():
    """Basic health check for the backend service (no external dependencies)."""
    return {"message": "Healthy"}


@app.get("/health/db", tags=["Health"], summary="Database health check")
def health_db_check():
    """
    Check database connectivity.

    Returns a JSON payload indicating whether the database is reachable.
    """
    ok = db_healthcheck()
    return {"database": "ok" if ok else "unreachable", "ok": ok}
