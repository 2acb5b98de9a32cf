"""
FastAPI dependencies: caller identity, cart session and integration clients.

Identity is asserted by the upstream auth gateway through the X-User-Id header;
guest carts travel in X-Cart-Session. Integration clients are process-wide
singletons so tests can swap them with `app.dependency_overrides`.
"""

from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from src.core.errors import ForbiddenError, UnauthorizedError
from src.db.models import User
from src.db.session import get_db
from src.integrations.analytics import AnalyticsClient
from src.integrations.email import EmailClient
from src.integrations.search_index import SearchIndexClient
from src.integrations.stripe_client import StripeClient
from src.services.webhooks import StripeWebhookProcessor

CART_SESSION_HEADER = "X-Cart-Session"


# PUBLIC_INTERFACE
def get_current_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Resolve the gateway-asserted user id to an active User, or None for guests."""
    if not x_user_id:
        return None
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        return None
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


# PUBLIC_INTERFACE
def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    """Signed-in user or 401."""
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


# PUBLIC_INTERFACE
def require_admin(user: Optional[User] = Depends(get_current_user)) -> User:
    """ADMIN or STAFF user; 401 for guests, 403 for everyone else."""
    if user is None:
        raise UnauthorizedError("Authentication required")
    if not user.is_staff:
        raise ForbiddenError("Admin access required")
    return user


def get_cart_session(x_cart_session: Optional[str] = Header(default=None, alias=CART_SESSION_HEADER)) -> Optional[str]:
    return x_cart_session or None


@lru_cache()
def get_stripe_client() -> StripeClient:
    return StripeClient()


@lru_cache()
def get_email_client() -> EmailClient:
    return EmailClient()


@lru_cache()
def get_analytics_client() -> AnalyticsClient:
    return AnalyticsClient()


@lru_cache()
def get_search_client() -> SearchIndexClient:
    return SearchIndexClient()


def close_integration_clients() -> None:
    """Close the HTTP clients held by the cached providers and drop them from the cache."""
    for provider in (get_email_client, get_analytics_client, get_search_client):
        if provider.cache_info().currsize:
            provider().close()
        provider.cache_clear()


def get_webhook_processor(
    stripe_client: StripeClient = Depends(get_stripe_client),
    email_client: EmailClient = Depends(get_email_client),
    analytics: AnalyticsClient = Depends(get_analytics_client),
) -> StripeWebhookProcessor:
    return StripeWebhookProcessor(stripe_client, email_client=email_client, analytics=analytics)
