"""Scheduled job endpoints, called by the platform scheduler with a shared bearer secret."""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from src.api.deps import get_email_client
from src.api.schemas import AbandonmentRunResponse
from src.core.config import get_settings
from src.core.errors import UnauthorizedError
from src.db.session import get_db
from src.integrations.email import EmailClient
from src.services.abandonment import process_abandoned_carts

router = APIRouter(prefix="/cron", tags=["Cron"])


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    expected = get_settings().cron_secret
    if not expected or not authorization:
        raise UnauthorizedError("Invalid cron credentials")
    if not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise UnauthorizedError("Invalid cron credentials")


@router.post(
    "/cart-abandonment",
    response_model=AbandonmentRunResponse,
    dependencies=[Depends(require_cron_secret)],
    summary="Send due cart reminder emails",
)
def cart_abandonment(db: Session = Depends(get_db), email_client: EmailClient = Depends(get_email_client)):
    return process_abandoned_carts(db, email_client)
