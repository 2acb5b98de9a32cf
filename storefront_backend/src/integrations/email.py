"""
Transactional email over the SendGrid v3 API, plus the message templates.

When no API key is configured, messages are logged and dropped so local
development and tests never send mail.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from src.core.config import Settings, get_settings
from src.integrations.http import request_json

logger = structlog.get_logger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"

ABANDONMENT_SUBJECTS = {
    1: "You left something behind...",
    2: "Still thinking about it?",
    3: "Last chance: Your cart is waiting",
}


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: Optional[str] = None
    reply_to: Optional[str] = None


def _money(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def _rows(lines: Sequence[Dict[str, Any]]) -> str:
    return "".join(
        f"<tr><td>{escape(line['name'])}</td><td>{line['quantity']}</td><td>{_money(line['total_cents'])}</td></tr>"
        for line in lines
    )


def order_confirmation(settings: Settings, order: Any) -> EmailMessage:
    lines = [
        {"name": f"{item.product_name} ({item.variant_name})", "quantity": item.quantity, "total_cents": item.total_price_cents}
        for item in order.items
    ]
    html = (
        f"<h1>Thank you for your order!</h1>"
        f"<p>Order <strong>{escape(order.order_number)}</strong> is confirmed.</p>"
        f"<table>{_rows(lines)}</table>"
        f"<p>Subtotal: {_money(order.subtotal_cents)}<br>Shipping: {_money(order.shipping_cents)}<br>"
        f"Tax: {_money(order.tax_cents)}<br>Discount: -{_money(order.discount_cents)}<br>"
        f"<strong>Total: {_money(order.total_cents)}</strong></p>"
        f'<p><a href="{settings.app_url}/account/orders/{order.order_number}">View your order</a></p>'
    )
    return EmailMessage(
        to=order.customer_email,
        subject=f"Your {settings.store_name} Order {order.order_number} is Confirmed!",
        html=html,
    )


def shipping_update(settings: Settings, order: Any, tracking_number: str, carrier: Optional[str], tracking_url: Optional[str]) -> EmailMessage:
    link = f'<p><a href="{escape(tracking_url)}">Track your package</a></p>' if tracking_url else ""
    html = (
        f"<h1>Your order is on its way</h1>"
        f"<p>Order <strong>{escape(order.order_number)}</strong> has shipped"
        f"{' via ' + escape(carrier) if carrier else ''}.</p>"
        f"<p>Tracking number: <strong>{escape(tracking_number)}</strong></p>{link}"
    )
    return EmailMessage(
        to=order.customer_email,
        subject=f"Your {settings.store_name} Order Has Shipped! - {order.order_number}",
        html=html,
    )


def registry_invite(settings: Settings, *, to: str, owner_name: str, registry_name: str, share_code: str, message: Optional[str]) -> EmailMessage:
    note = f"<blockquote>{escape(message)}</blockquote>" if message else ""
    html = (
        f"<h1>{escape(owner_name)} shared a registry with you</h1>"
        f"<p>{escape(registry_name)}</p>{note}"
        f'<p><a href="{settings.app_url}/registry/{share_code}">View the registry</a></p>'
    )
    return EmailMessage(to=to, subject=f"{owner_name} shared their registry with you", html=html)


def fulfillment_issue_alert(settings: Settings, *, order_number: str, dropship_order_id: str, issue: str) -> EmailMessage:
    html = (
        f"<h1>Fulfillment issue</h1>"
        f"<p>Order {escape(order_number)} (dropship {escape(dropship_order_id)}) needs attention.</p>"
        f"<p>{escape(issue)}</p>"
    )
    return EmailMessage(
        to=settings.admin_email,
        subject=f"[{settings.store_name}] Fulfillment Issue - Order {order_number}",
        html=html,
    )


def cart_reminder(settings: Settings, *, to: str, stage: int, lines: List[Dict[str, Any]], subtotal_cents: int) -> EmailMessage:
    html = (
        f"<h1>{escape(ABANDONMENT_SUBJECTS[stage])}</h1>"
        f"<table>{_rows(lines)}</table>"
        f"<p>Subtotal: {_money(subtotal_cents)}</p>"
        f'<p><a href="{settings.app_url}/cart">Return to your cart</a></p>'
    )
    return EmailMessage(to=to, subject=ABANDONMENT_SUBJECTS[stage], html=html)


class EmailClient:
    """SendGrid mail sender."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.Client] = None) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=15.0)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.sendgrid_api_key)

    def send(self, message: EmailMessage) -> bool:
        """
        Send one message.

        Returns False when email is not configured. Raises ExternalServiceError
        when SendGrid rejects the request.
        """
        if not self.enabled:
            logger.warning("email_not_configured", subject=message.subject, to=message.to)
            return False

        content = [{"type": "text/html", "value": message.html}]
        if message.text:
            content.insert(0, {"type": "text/plain", "value": message.text})
        payload: Dict[str, Any] = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": self.settings.email_from, "name": self.settings.store_name},
            "subject": message.subject,
            "content": content,
        }
        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}

        request_json(
            self._client,
            "SendGrid",
            "POST",
            SENDGRID_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.settings.sendgrid_api_key}"},
        )
        logger.info("email_sent", subject=message.subject, to=message.to)
        return True

    def close(self) -> None:
        self._client.close()
