"""
Stripe API client with retry logic and error translation.

Implements:
- Exponential backoff for transient errors (connection, rate limit, 5xx)
- Checkout session, coupon and refund creation
- Webhook signature verification
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import stripe
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import Settings, get_settings
from src.core.errors import BadRequestError, ExternalServiceError

logger = structlog.get_logger(__name__)


class WebhookSignatureError(BadRequestError):
    """Raised when a webhook payload fails signature verification."""


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, (stripe.APIConnectionError, stripe.RateLimitError)):
        return True
    if isinstance(error, stripe.APIError):
        return True
    if isinstance(error, stripe.StripeError):
        return (error.http_status or 0) >= 500
    return False


_retry_transient = retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


class StripeClient:
    """
    Thin wrapper around the Stripe SDK.

    Transient failures are retried; anything that still fails surfaces as an
    ExternalServiceError so the API layer answers 502.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        stripe.api_key = self.settings.stripe_secret_key
        stripe.api_version = self.settings.stripe_api_version
        logger.info("stripe_client_initialized", api_version=stripe.api_version)

    def _call(self, operation: str, func: Any, **params: Any) -> Any:
        if not self.settings.stripe_secret_key:
            raise ExternalServiceError("Stripe", "Stripe is not configured")
        try:
            return _retry_transient(func)(**params)
        except stripe.StripeError as exc:
            logger.error(
                "stripe_request_failed",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
                http_status=exc.http_status,
            )
            raise ExternalServiceError("Stripe", f"Stripe {operation} failed: {exc.user_message or exc}") from exc

    def create_checkout_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        discounts: Optional[List[Dict[str, str]]] = None,
    ) -> Any:
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if discounts:
            params["discounts"] = discounts
        session = self._call("checkout_session_create", stripe.checkout.Session.create, **params)
        logger.info("stripe_checkout_session_created", session_id=session.id)
        return session

    def retrieve_checkout_session(self, session_id: str) -> Any:
        return self._call("checkout_session_retrieve", stripe.checkout.Session.retrieve, id=session_id)

    def create_coupon(self, amount_off_cents: int, currency: str = "usd") -> Any:
        """One-off coupon used to carry an order-level discount into a checkout session."""
        return self._call(
            "coupon_create",
            stripe.Coupon.create,
            amount_off=amount_off_cents,
            currency=currency,
            duration="once",
        )

    def create_refund(self, payment_intent_id: str, *, reason: str = "requested_by_customer", amount_cents: Optional[int] = None) -> Any:
        params: Dict[str, Any] = {"payment_intent": payment_intent_id, "reason": reason}
        if amount_cents is not None:
            params["amount"] = amount_cents
        refund = self._call("refund_create", stripe.Refund.create, **params)
        logger.info("stripe_refund_created", payment_intent_id=payment_intent_id, refund_id=refund.id)
        return refund

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        """Verify the Stripe-Signature header and parse the event."""
        if not signature:
            raise WebhookSignatureError("Missing Stripe signature")
        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.settings.stripe_webhook_secret,
            )
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("webhook_signature_verification_failed", error=str(exc))
            raise WebhookSignatureError("Invalid signature") from exc
        logger.info("webhook_signature_verified", event_id=event.id, event_type=event.type)
        return event
