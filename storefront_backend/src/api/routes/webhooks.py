"""Payment provider webhooks."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from src.api.deps import get_webhook_processor
from src.api.schemas import WebhookResponse
from src.db.session import get_db
from src.services.webhooks import StripeWebhookProcessor

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def raw_body(request: Request) -> bytes:
    """Unparsed request body, as Stripe signs it."""
    return await request.body()


@router.post(
    "/stripe",
    response_model=WebhookResponse,
    summary="Stripe webhook endpoint",
    description="Verifies the Stripe-Signature header and dispatches the event.",
)
def stripe_webhook(
    body: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    processor: StripeWebhookProcessor = Depends(get_webhook_processor),
):
    """
    Handle Stripe webhook events.

    Signature failures answer 400 and are not retried by Stripe; handler
    failures answer 500 so Stripe redelivers the event.
    """
    event = processor.verify(body, stripe_signature)
    event_type = event["type"]

    try:
        processor.process_event(db, event)
    except Exception as e:
        db.rollback()
        logger.error("webhook_handler_failed", event_type=event_type, event_id=event["id"], error=str(e), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"received": False, "error": "Webhook handler failed"},
        )

    return {"received": True, "event_type": event_type}
