"""
Application exception hierarchy and its translation to HTTP responses.

Services raise these; `register_exception_handlers` turns them into
`{"error", "code", "details"}` JSON bodies at the API boundary.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base class for errors that carry an HTTP status and a machine-readable code."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", **kwargs: Any) -> None:
        super().__init__(f"{resource} not found", **kwargs)


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests"


class InternalServerError(AppError):
    pass


class ExternalServiceError(AppError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: Optional[str] = None, **kwargs: Any) -> None:
        self.service = service
        super().__init__(message or f"{service} request failed", **kwargs)


class PaymentError(AppError):
    status_code = 400
    code = "PAYMENT_ERROR"
    default_message = "Payment failed"


class InventoryError(AppError):
    status_code = 400
    code = "INVENTORY_ERROR"
    default_message = "Insufficient inventory"


class OutOfStockError(InventoryError):
    """Raised when a variant cannot cover the requested quantity."""

    def __init__(
        self,
        product_name: str,
        *,
        requested: int,
        available: int,
        product_id: Optional[str] = None,
        variant_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"{product_name} is out of stock" if available <= 0 else f"Only {available} of {product_name} available",
            details={
                "productId": product_id,
                "variantId": variant_id,
                "requested": requested,
                "available": available,
            },
        )


class InvalidStatusTransitionError(AppError):
    status_code = 409
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot change status from {current} to {target}",
            details={"from": current, "to": target},
        )


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", path=request.url.path, status_code=exc.status_code, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors: Dict[str, list] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "header")]
        field_errors.setdefault(".".join(loc) or "_", []).append(err.get("msg", "Invalid value"))
    body = BadRequestError("Invalid request data", details={"fieldErrors": field_errors}).to_dict()
    return JSONResponse(status_code=400, content=body)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content=InternalServerError().to_dict())


# PUBLIC_INTERFACE
def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error translators on the application."""
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
