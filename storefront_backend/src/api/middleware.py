"""
HTTP middleware: request-scoped logging context and the route caching policy.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Optional, Tuple

import structlog
from fastapi import Request, Response

logger = structlog.get_logger(__name__)

STATIC_PREFIXES: Tuple[str, ...] = ("/static/", "/assets/", "/_next/static/", "/images/", "/fonts/")
PRIVATE_PREFIXES: Tuple[str, ...] = ("/api/account", "/api/checkout", "/api/orders", "/api/cart", "/api/user")
ADMIN_PREFIXES: Tuple[str, ...] = ("/api/admin",)
PUBLIC_CATALOG_PREFIXES: Tuple[str, ...] = ("/api/products", "/api/categories", "/api/search")

CACHE_STATIC = "public, max-age=31536000, immutable"
CACHE_PRIVATE = "private, no-cache, no-store, must-revalidate"
CACHE_ADMIN = "no-store, no-cache, must-revalidate, proxy-revalidate"
CACHE_PUBLIC = "public, s-maxage=60, stale-while-revalidate=300"
CACHE_NONE = "no-store"


def _matches(path: str, prefixes: Tuple[str, ...]) -> bool:
    return any(path == prefix.rstrip("/") or path.startswith(prefix.rstrip("/") + "/") for prefix in prefixes)


# PUBLIC_INTERFACE
def cache_control_for(method: str, path: str) -> Optional[str]:
    """
    Cache-Control value for a request, or None when the path is not governed.

    Only safe reads of catalog and search are publicly cacheable; everything
    else under /api is private or uncacheable.
    """
    if _matches(path, STATIC_PREFIXES):
        return CACHE_STATIC
    if _matches(path, ADMIN_PREFIXES):
        return CACHE_ADMIN
    if _matches(path, PRIVATE_PREFIXES):
        return CACHE_PRIVATE
    if method in ("GET", "HEAD") and _matches(path, PUBLIC_CATALOG_PREFIXES):
        return CACHE_PUBLIC
    if _matches(path, ("/api",)):
        return CACHE_NONE
    return None


def cdn_cache_control_for(cache_control: str) -> str:
    return cache_control if cache_control.startswith("public") else CACHE_NONE


def apply_cache_headers(request: Request, response: Response) -> None:
    if "cache-control" in response.headers:
        return
    value = cache_control_for(request.method, request.url.path)
    if value is None:
        return
    # Error responses are never shared.
    if response.status_code >= 400 and value.startswith("public") and value != CACHE_STATIC:
        value = CACHE_NONE
    response.headers["Cache-Control"] = value
    response.headers["CDN-Cache-Control"] = cdn_cache_control_for(value)


# PUBLIC_INTERFACE
async def request_context_middleware(request: Request, call_next: Any) -> Response:
    """
    Add a request id to every request and log its start and completion.

    An incoming X-Request-ID is reused so ids survive the upstream gateway.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    logger.info(
        "request_started",
        client_host=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        apply_cache_headers(request, response)

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 4),
        )
        return response

    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            duration_seconds=round(time.time() - start_time, 4),
        )
        raise

    finally:
        structlog.contextvars.clear_contextvars()
