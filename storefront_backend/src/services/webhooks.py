"""
Stripe webhook event processing.

Handlers are registered per event type. Each receives the event's data object
and mutates order/payment rows; events for unknown sessions or payment intents
are logged and skipped so Stripe does not keep retrying them.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.base import utcnow
from src.db.models import CheckoutSession, OrderStatus, Payment, PaymentStatus
from src.integrations.analytics import AnalyticsClient
from src.integrations.email import EmailClient
from src.integrations.stripe_client import StripeClient
from src.services import checkout as checkout_service
from src.services import orders as order_service

logger = structlog.get_logger(__name__)

Handler = Callable[[Session, Any], None]


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a StripeObject or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _payment_by_intent(db: Session, payment_intent_id: Optional[str]) -> Optional[Payment]:
    if not payment_intent_id:
        return None
    return db.execute(
        select(Payment).where(Payment.stripe_payment_intent_id == payment_intent_id)
    ).scalar_one_or_none()


class StripeWebhookProcessor:
    """Verifies Stripe events and routes them to registered handlers."""

    def __init__(
        self,
        stripe_client: StripeClient,
        email_client: Optional[EmailClient] = None,
        analytics: Optional[AnalyticsClient] = None,
    ) -> None:
        self.stripe_client = stripe_client
        self.email_client = email_client
        self.analytics = analytics
        self.event_handlers: Dict[str, Handler] = {}

        self.register_handler("checkout.session.completed", self.handle_checkout_completed)
        self.register_handler("checkout.session.expired", self.handle_checkout_expired)
        self.register_handler("payment_intent.succeeded", self.handle_payment_succeeded)
        self.register_handler("payment_intent.payment_failed", self.handle_payment_failed)
        self.register_handler("charge.refunded", self.handle_charge_refunded)
        self.register_handler("charge.dispute.created", self.handle_dispute_created)

    def register_handler(self, event_type: str, handler: Handler) -> None:
        self.event_handlers[event_type] = handler

    def verify(self, payload: bytes, signature: Optional[str]) -> Any:
        return self.stripe_client.construct_event(payload, signature)

    def process_event(self, db: Session, event: Any) -> bool:
        """Dispatch an event. Returns False when no handler is registered for its type."""
        event_type = _get(event, "type")
        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info("webhook_event_unhandled", event_type=event_type, event_id=_get(event, "id"))
            return False
        data_object = _get(_get(event, "data"), "object")
        logger.info("webhook_event_processing", event_type=event_type, event_id=_get(event, "id"))
        handler(db, data_object)
        return True

    def handle_checkout_completed(self, db: Session, session: Any) -> None:
        session_id = _get(session, "id")
        if _get(session, "payment_status") != "paid":
            logger.info("checkout_session_not_paid", session_id=session_id, payment_status=_get(session, "payment_status"))
            return
        if db.get(CheckoutSession, session_id) is None:
            logger.warning("checkout_session_unknown", session_id=session_id)
            return
        order, created = order_service.create_order_from_checkout(
            db,
            session_id,
            payment_intent_id=_get(session, "payment_intent"),
            payment_method=(_get(session, "payment_method_types") or [None])[0],
            email_client=self.email_client,
            analytics=self.analytics,
        )
        logger.info("checkout_completed_processed", session_id=session_id, order_number=order.order_number, created=created)

    def handle_checkout_expired(self, db: Session, session: Any) -> None:
        checkout_service.expire_checkout_session(db, _get(session, "id"))

    def handle_payment_succeeded(self, db: Session, intent: Any) -> None:
        payment = _payment_by_intent(db, _get(intent, "id"))
        if payment is None:
            logger.warning("payment_intent_unknown", payment_intent_id=_get(intent, "id"))
            return

        charge = _get(intent, "latest_charge")
        card = _get(_get(charge, "payment_method_details"), "card")
        payment.status = PaymentStatus.COMPLETED.value
        if card is not None:
            payment.card_last4 = _get(card, "last4")
            payment.card_brand = _get(card, "brand")
            payment.payment_method = "card"

        order = payment.order
        order.payment_status = PaymentStatus.COMPLETED.value
        if order.status == OrderStatus.PENDING.value:
            order.status = OrderStatus.CONFIRMED.value
            order.confirmed_at = utcnow()
        db.commit()
        logger.info("payment_succeeded", order_number=order.order_number, payment_intent_id=payment.stripe_payment_intent_id)

    def handle_payment_failed(self, db: Session, intent: Any) -> None:
        payment = _payment_by_intent(db, _get(intent, "id"))
        if payment is None:
            logger.warning("payment_intent_unknown", payment_intent_id=_get(intent, "id"))
            return

        error = _get(intent, "last_payment_error")
        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = _get(error, "message", "Payment failed")
        payment.failure_code = _get(error, "code")

        order = payment.order
        order.status = OrderStatus.FAILED.value
        order.payment_status = PaymentStatus.FAILED.value
        db.commit()
        logger.warning(
            "payment_failed",
            order_number=order.order_number,
            failure_code=payment.failure_code,
            failure_reason=payment.failure_reason,
        )

    def handle_charge_refunded(self, db: Session, charge: Any) -> None:
        payment = _payment_by_intent(db, _get(charge, "payment_intent"))
        if payment is None:
            logger.warning("payment_intent_unknown", payment_intent_id=_get(charge, "payment_intent"))
            return

        order = payment.order
        amount = _get(charge, "amount")
        if amount is None:
            amount = order.total_cents
        refunded = _get(charge, "amount_refunded", 0)
        full_refund = refunded >= amount

        payment.refunded_cents = refunded
        if full_refund:
            payment.status = PaymentStatus.REFUNDED.value
            order.payment_status = PaymentStatus.REFUNDED.value
            order.status = OrderStatus.REFUNDED.value
            order.cancelled_at = utcnow()
        else:
            payment.status = PaymentStatus.PARTIALLY_REFUNDED.value
            order.payment_status = PaymentStatus.PARTIALLY_REFUNDED.value
        db.commit()
        logger.info("charge_refunded", order_number=order.order_number, amount_refunded=refunded, full_refund=full_refund)

        if full_refund and self.analytics is not None:
            try:
                self.analytics.track_refund(order, refunded)
            except Exception as exc:
                logger.error("refund_event_failed", order_number=order.order_number, error=str(exc))

    def handle_dispute_created(self, db: Session, dispute: Any) -> None:
        logger.warning(
            "dispute_alert",
            dispute_id=_get(dispute, "id"),
            charge_id=_get(dispute, "charge"),
            amount=_get(dispute, "amount"),
            reason=_get(dispute, "reason"),
        )

