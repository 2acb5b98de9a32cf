"""Customer order routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from src.api.deps import get_analytics_client, get_email_client, get_stripe_client, require_user
from src.api.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    OrderListResponse,
    OrderResponse,
    RefundRequest,
    TrackingResponse,
)
from src.core.errors import ForbiddenError, NotFoundError, PaymentError
from src.db.models import CheckoutSession, CheckoutSessionStatus, User
from src.db.session import get_db
from src.integrations.analytics import AnalyticsClient
from src.integrations.email import EmailClient
from src.integrations.stripe_client import StripeClient
from src.services import orders as order_service

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("", response_model=OrderListResponse, summary="The caller's orders")
def list_orders(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=50),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    return order_service.list_user_orders(db, user, page=page, page_size=page_size, status=status_filter)


@router.post(
    "",
    response_model=CreateOrderResponse,
    summary="Create the order for a paid checkout session",
    description="Fallback for when the payment webhook has not arrived yet. Idempotent per session.",
)
def create_order(
    body: CreateOrderRequest,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
    email_client: EmailClient = Depends(get_email_client),
    analytics: AnalyticsClient = Depends(get_analytics_client),
):
    checkout = db.get(CheckoutSession, body.checkout_session_id)
    if checkout is None:
        raise NotFoundError("Checkout session")
    if checkout.user_id != user.id:
        raise ForbiddenError("You do not have access to this checkout session")

    payment_intent_id = checkout.payment_intent_id
    if checkout.status != CheckoutSessionStatus.COMPLETED.value:
        remote = stripe_client.retrieve_checkout_session(checkout.id)
        if remote.payment_status != "paid":
            raise PaymentError("Payment has not been completed")
        payment_intent_id = remote.payment_intent

    order, created = order_service.create_order_from_checkout(
        db,
        body.checkout_session_id,
        payment_intent_id=payment_intent_id,
        email_client=email_client,
        analytics=analytics,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {"created": created, "order": OrderResponse.model_validate(order)}


@router.get("/{order_number}", response_model=OrderResponse, summary="Order detail")
def get_order(order_number: str, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return OrderResponse.model_validate(order_service.get_order(db, order_number, user))


@router.post("/{order_number}/cancel", response_model=OrderResponse, summary="Cancel an unshipped order")
def cancel_order(
    order_number: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    return OrderResponse.model_validate(order_service.cancel_order(db, stripe_client, order_number, user))


@router.post("/{order_number}/refund", response_model=OrderResponse, summary="Request a refund")
def request_refund(
    order_number: str, body: RefundRequest, db: Session = Depends(get_db), user: User = Depends(require_user)
):
    return OrderResponse.model_validate(order_service.request_refund(db, order_number, user, body.reason))


@router.get("/{order_number}/tracking", response_model=TrackingResponse, summary="Shipment tracking")
def track_order(order_number: str, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return order_service.track_order(db, order_number, user)
