"""Checkout routes: open a hosted checkout session, poll it, quote shipping and tax."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from src.api.deps import get_cart_session, get_current_user, get_stripe_client
from src.api.schemas import CheckoutRequest, CheckoutResponse, CheckoutSessionResponse, QuoteRequest, QuoteResponse
from src.db.models import User
from src.db.session import get_db
from src.integrations.stripe_client import StripeClient
from src.services import checkout as checkout_service

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a checkout session",
    description="Validates the cart, prices it and returns the hosted payment page URL.",
)
def create_checkout(
    body: CheckoutRequest,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
    cart_session: Optional[str] = Depends(get_cart_session),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    shipping_address = body.shipping_address.model_dump()
    billing_address = shipping_address if body.use_same_billing_address else body.billing_address.model_dump()
    session = checkout_service.create_checkout_session(
        db,
        stripe_client,
        user=user,
        cart_session=cart_session,
        email=body.email,
        shipping_address=shipping_address,
        billing_address=billing_address,
        shipping_method=body.shipping_method_id,
        discount_code=body.discount_code,
        notes=body.notes,
    )
    return {"session_id": session.id, "url": session.url}


@router.get("/session/{session_id}", response_model=CheckoutSessionResponse, summary="Checkout session status")
def get_checkout_session(session_id: str, db: Session = Depends(get_db)):
    result = checkout_service.get_checkout_session(db, session_id)
    session = result["session"]
    return CheckoutSessionResponse(
        id=session.id,
        status=session.status,
        email=session.email,
        shipping_method=session.shipping_method,
        discount_code=session.discount_code,
        subtotal_cents=session.subtotal_cents,
        shipping_cents=session.shipping_cents,
        tax_cents=session.tax_cents,
        discount_cents=session.discount_cents,
        total_cents=session.total_cents,
        expires_at=session.expires_at,
        completed_at=session.completed_at,
        order_number=result["order_number"],
    )


@router.post("/quote", response_model=QuoteResponse, summary="Shipping options and tax preview")
def quote(
    body: QuoteRequest,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
    cart_session: Optional[str] = Depends(get_cart_session),
):
    return checkout_service.shipping_quote(
        db,
        user=user,
        cart_session=cart_session,
        country=body.country,
        state=body.state,
        shipping_method=body.shipping_method_id,
    )
