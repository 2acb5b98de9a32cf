"""GA4 Measurement Protocol events for server-side purchase and refund tracking."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog

from src.core.config import Settings, get_settings
from src.integrations.http import request_json

logger = structlog.get_logger(__name__)

COLLECT_URL = "https://www.google-analytics.com/mp/collect"


class AnalyticsClient:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.Client] = None) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=10.0)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.ga4_measurement_id and self.settings.ga4_api_secret)

    def _send(self, client_id: str, name: str, params: Dict[str, Any]) -> bool:
        if not self.enabled:
            logger.debug("analytics_not_configured", event=name)
            return False
        request_json(
            self._client,
            "GA4",
            "POST",
            COLLECT_URL,
            params={"measurement_id": self.settings.ga4_measurement_id, "api_secret": self.settings.ga4_api_secret},
            json={"client_id": client_id, "events": [{"name": name, "params": params}]},
        )
        logger.info("analytics_event_sent", event=name)
        return True

    def track_purchase(self, order: Any) -> bool:
        items: List[Dict[str, Any]] = [
            {
                "item_id": item.sku,
                "item_name": item.product_name,
                "item_variant": item.variant_name,
                "price": item.unit_price_cents / 100,
                "quantity": item.quantity,
            }
            for item in order.items
        ]
        return self._send(
            str(order.user_id or order.id),
            "purchase",
            {
                "transaction_id": order.order_number,
                "currency": order.currency,
                "value": order.total_cents / 100,
                "tax": order.tax_cents / 100,
                "shipping": order.shipping_cents / 100,
                "coupon": order.discount_code or "",
                "items": items,
            },
        )

    def track_refund(self, order: Any, amount_cents: int) -> bool:
        return self._send(
            str(order.user_id or order.id),
            "refund",
            {"transaction_id": order.order_number, "currency": order.currency, "value": amount_cents / 100},
        )

    def close(self) -> None:
        self._client.close()
