"""
Cart abandonment reminders.

A cart with items and a known email gets up to three reminders, each sent once
its delay (default 1h, 24h, 72h) has passed since the last cart activity.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.db.base import as_utc, utcnow
from src.db.models import Cart
from src.integrations.email import EmailClient, cart_reminder

logger = structlog.get_logger(__name__)


def _recipient(cart: Cart) -> Optional[str]:
    if cart.email:
        return cart.email
    if cart.user is not None:
        return cart.user.email
    return None


def due_stage(cart: Cart, now: datetime, delays_hours: list) -> Optional[int]:
    """1-based reminder number that is due for this cart, or None."""
    sent = cart.abandonment_emails_sent
    if sent >= len(delays_hours):
        return None
    idle = now - as_utc(cart.last_activity_at)
    if idle >= timedelta(hours=delays_hours[sent]):
        return sent + 1
    return None


# PUBLIC_INTERFACE
def process_abandoned_carts(db: Session, email_client: EmailClient, now: Optional[datetime] = None) -> Dict[str, int]:
    """Send every due reminder. Returns counts of sent, failed and skipped carts."""
    settings = get_settings()
    now = now or utcnow()
    delays = settings.get_abandonment_delays()
    earliest = now - timedelta(hours=delays[0])

    candidates = list(
        db.execute(
            select(Cart)
            .where(Cart.items.any(), Cart.last_activity_at <= earliest, Cart.abandonment_emails_sent < len(delays))
            .order_by(Cart.last_activity_at)
        ).scalars()
    )

    result = {"sent": 0, "failed": 0, "skipped": 0}
    for cart in candidates:
        if result["sent"] >= settings.cart_abandonment_batch_size:
            break
        stage = due_stage(cart, now, delays)
        to = _recipient(cart)
        if stage is None or to is None:
            result["skipped"] += 1
            continue

        lines = [
            {
                "name": f"{item.variant.product.name} ({item.variant.name})",
                "quantity": item.quantity,
                "total_cents": item.variant.price_cents * item.quantity,
            }
            for item in cart.items
        ]
        subtotal = sum(line["total_cents"] for line in lines)
        try:
            delivered = email_client.send(cart_reminder(settings, to=to, stage=stage, lines=lines, subtotal_cents=subtotal))
        except Exception as exc:
            result["failed"] += 1
            logger.error("cart_reminder_failed", cart_id=str(cart.id), stage=stage, error=str(exc))
            continue
        if not delivered:
            result["skipped"] += 1
            continue

        cart.abandonment_emails_sent = stage
        cart.last_abandonment_email_at = now
        db.commit()
        result["sent"] += 1
        logger.info("cart_reminder_sent", cart_id=str(cart.id), stage=stage)

    logger.info("cart_abandonment_processed", **result)
    return result
