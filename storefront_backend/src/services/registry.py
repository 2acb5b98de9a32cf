"""
Gift registries.

Each user owns at most one registry, addressed publicly by an 8-character share
code. Guests can mark items as purchased while the registry is public.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.config import get_settings
from src.core.errors import BadRequestError, ConflictError, ExternalServiceError, ForbiddenError, NotFoundError
from src.db.base import as_utc
from src.db.models import Registry, RegistryItem, RegistryPriority, RegistryStatus, User, Variant
from src.integrations.email import EmailClient, registry_invite

logger = structlog.get_logger(__name__)

SHARE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SHARE_CODE_LENGTH = 8
MAX_ITEM_QUANTITY = 99
MAX_SHARE_RECIPIENTS = 20

_PRIORITY_RANK = {RegistryPriority.HIGH.value: 0, RegistryPriority.MEDIUM.value: 1, RegistryPriority.LOW.value: 2}

UPDATABLE_FIELDS = ("name", "description", "event_date", "is_public", "status")


def generate_share_code(db: Session) -> str:
    """Random code from an alphabet without look-alike characters, unique across registries."""
    while True:
        code = "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(SHARE_CODE_LENGTH))
        taken = db.execute(select(Registry.id).where(Registry.share_code == code)).first()
        if taken is None:
            return code


def _by_code(db: Session, share_code: str) -> Registry:
    registry = db.execute(select(Registry).where(Registry.share_code == share_code.upper())).scalar_one_or_none()
    if registry is None:
        raise NotFoundError("Registry")
    return registry


def _owned(db: Session, user: User, share_code: str) -> Registry:
    registry = _by_code(db, share_code)
    if registry.user_id != user.id:
        raise NotFoundError("Registry")
    return registry


def _validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name or len(name) > 200:
        raise BadRequestError("Registry name must be between 1 and 200 characters")
    return name


def _validate_quantity(quantity: int) -> None:
    if quantity < 1 or quantity > MAX_ITEM_QUANTITY:
        raise BadRequestError(f"Quantity must be between 1 and {MAX_ITEM_QUANTITY}")


def _validate_priority(priority: str) -> str:
    try:
        return RegistryPriority(priority).value
    except ValueError:
        raise BadRequestError(f"Invalid priority: {priority}") from None


def sorted_items(registry: Registry) -> List[RegistryItem]:
    return sorted(registry.items, key=lambda item: (_PRIORITY_RANK[item.priority], as_utc(item.created_at)))


# PUBLIC_INTERFACE
def create_registry(
    db: Session, user: User, name: str, description: Optional[str] = None, event_date: Optional[datetime] = None
) -> Registry:
    name = _validate_name(name)
    if db.execute(select(Registry.id).where(Registry.user_id == user.id)).first() is not None:
        raise ConflictError("You already have a registry")

    registry = Registry(
        user_id=user.id,
        name=name,
        description=description,
        event_date=event_date,
        share_code=generate_share_code(db),
        is_public=True,
        status=RegistryStatus.ACTIVE.value,
    )
    db.add(registry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("You already have a registry") from None
    logger.info("registry_created", registry_id=str(registry.id), user_id=str(user.id))
    return registry


def get_user_registry(db: Session, user: User) -> Registry:
    registry = db.execute(select(Registry).where(Registry.user_id == user.id)).scalar_one_or_none()
    if registry is None:
        raise NotFoundError("Registry")
    return registry


def get_registry(db: Session, share_code: str, user: Optional[User] = None) -> Dict[str, Any]:
    registry = _by_code(db, share_code)
    is_owner = user is not None and registry.user_id == user.id
    if not registry.is_public and not is_owner:
        raise ForbiddenError("This registry is private")
    return {"registry": registry, "items": sorted_items(registry), "is_owner": is_owner}


def update_registry(db: Session, user: User, share_code: str, fields: Dict[str, Any]) -> Registry:
    registry = _owned(db, user, share_code)
    for key in UPDATABLE_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key == "name":
            value = _validate_name(value)
        if key == "status":
            try:
                value = RegistryStatus(value).value
            except ValueError:
                raise BadRequestError(f"Invalid status: {value}") from None
        setattr(registry, key, value)
    db.commit()
    logger.info("registry_updated", registry_id=str(registry.id), fields=sorted(k for k in fields if k in UPDATABLE_FIELDS))
    return registry


def delete_registry(db: Session, user: User, share_code: str) -> None:
    registry = _owned(db, user, share_code)
    db.delete(registry)
    db.commit()
    logger.info("registry_deleted", registry_id=str(registry.id), user_id=str(user.id))


def add_item(
    db: Session,
    user: User,
    share_code: str,
    variant_id: uuid.UUID,
    quantity: int = 1,
    priority: str = RegistryPriority.MEDIUM.value,
    notes: Optional[str] = None,
) -> RegistryItem:
    registry = _owned(db, user, share_code)
    _validate_quantity(quantity)
    priority = _validate_priority(priority)

    variant = db.get(Variant, variant_id)
    if variant is None:
        raise NotFoundError("Product variant")
    if not variant.is_active or not variant.product.is_active:
        raise BadRequestError(f"{variant.product.name} is no longer available")
    if any(item.variant_id == variant_id for item in registry.items):
        raise ConflictError("This item is already in your registry")

    item = RegistryItem(
        product_id=variant.product_id,
        variant_id=variant.id,
        product_name=variant.product.name,
        product_slug=variant.product.slug,
        variant_name=variant.name,
        quantity=quantity,
        priority=priority,
        notes=notes,
    )
    registry.items.append(item)
    db.commit()
    logger.info("registry_item_added", registry_id=str(registry.id), variant_id=str(variant_id))
    return item


def _owned_item(db: Session, user: User, share_code: str, item_id: uuid.UUID) -> RegistryItem:
    registry = _owned(db, user, share_code)
    item = next((i for i in registry.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Registry item")
    return item


def update_item(db: Session, user: User, share_code: str, item_id: uuid.UUID, fields: Dict[str, Any]) -> RegistryItem:
    item = _owned_item(db, user, share_code, item_id)
    if fields.get("quantity") is not None:
        _validate_quantity(fields["quantity"])
        item.quantity = fields["quantity"]
    if fields.get("priority") is not None:
        item.priority = _validate_priority(fields["priority"])
    if "notes" in fields:
        item.notes = fields["notes"]
    db.commit()
    return item


def remove_item(db: Session, user: User, share_code: str, item_id: uuid.UUID) -> None:
    item = _owned_item(db, user, share_code, item_id)
    item.registry.items.remove(item)
    db.commit()


# PUBLIC_INTERFACE
def purchase_item(db: Session, share_code: str, item_id: uuid.UUID, quantity: int = 1) -> RegistryItem:
    """Record a gift purchase against a registry item."""
    registry = _by_code(db, share_code)
    if not registry.is_public:
        raise ForbiddenError("This registry is private")
    item = next((i for i in registry.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Registry item")
    if quantity < 1:
        raise BadRequestError("Quantity must be at least 1")
    if quantity > item.remaining:
        raise BadRequestError(f"Only {item.remaining} items remaining")

    item.quantity_purchased += quantity
    if all(i.remaining == 0 for i in registry.items):
        registry.status = RegistryStatus.COMPLETED.value
    db.commit()
    logger.info("registry_item_purchased", registry_id=str(registry.id), item_id=str(item_id), quantity=quantity)
    return item


def share_registry(
    db: Session,
    user: User,
    share_code: str,
    emails: List[str],
    message: Optional[str],
    email_client: EmailClient,
) -> int:
    if not emails or len(emails) > MAX_SHARE_RECIPIENTS:
        raise BadRequestError(f"Provide between 1 and {MAX_SHARE_RECIPIENTS} email addresses")
    registry = _owned(db, user, share_code)
    settings = get_settings()
    owner_name = user.name or user.email

    failed: List[str] = []
    for address in emails:
        try:
            email_client.send(
                registry_invite(
                    settings,
                    to=address,
                    owner_name=owner_name,
                    registry_name=registry.name,
                    share_code=registry.share_code,
                    message=message,
                )
            )
        except ExternalServiceError:
            failed.append(address)
    if failed:
        raise ExternalServiceError("SendGrid", "Failed to send some invitations", details={"failed": failed})
    logger.info("registry_shared", registry_id=str(registry.id), recipients=len(emails))
    return len(emails)
