"""Shared httpx request helper for the REST-based integrations."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.core.errors import ExternalServiceError

logger = structlog.get_logger(__name__)


def request_json(client: httpx.Client, service: str, method: str, url: str, **kwargs: Any) -> Any:
    """
    Send a request and return the decoded JSON body.

    Raises:
        ExternalServiceError: on connection failures, timeouts and non-2xx responses.
    """
    try:
        response = client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        logger.error("external_request_timeout", service=service, url=url)
        raise ExternalServiceError(service, f"{service} request timed out") from e
    except httpx.HTTPStatusError as e:
        logger.error(
            "external_request_failed",
            service=service,
            url=url,
            status_code=e.response.status_code,
            body=e.response.text[:500],
        )
        raise ExternalServiceError(service, f"{service} returned {e.response.status_code}") from e
    except httpx.HTTPError as e:
        logger.error("external_request_error", service=service, url=url, error=str(e))
        raise ExternalServiceError(service, f"Cannot reach {service}") from e

    if not response.content:
        return None
    return response.json()
