"""Saved customer addresses."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.core.errors import NotFoundError
from src.db.models import Address, User

logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = (
    "first_name",
    "last_name",
    "company",
    "line1",
    "line2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
    "is_default",
)


def list_addresses(db: Session, user: User) -> List[Address]:
    return list(
        db.execute(
            select(Address).where(Address.user_id == user.id).order_by(Address.is_default.desc(), Address.created_at)
        ).scalars()
    )


def _clear_default(db: Session, user: User) -> None:
    db.execute(
        update(Address)
        .where(Address.user_id == user.id, Address.is_default.is_(True))
        .values(is_default=False)
        .execution_options(synchronize_session="fetch")
    )


def create_address(db: Session, user: User, fields: Dict[str, Any]) -> Address:
    data = {key: fields[key] for key in EDITABLE_FIELDS if key in fields}
    has_any = db.execute(select(Address.id).where(Address.user_id == user.id)).first() is not None
    if not has_any:
        data["is_default"] = True
    if data.get("is_default"):
        _clear_default(db, user)
    address = Address(user_id=user.id, **data)
    db.add(address)
    db.commit()
    logger.info("address_created", address_id=str(address.id), user_id=str(user.id))
    return address


def _owned(db: Session, user: User, address_id: uuid.UUID) -> Address:
    address = db.get(Address, address_id)
    if address is None or address.user_id != user.id:
        raise NotFoundError("Address")
    return address


def update_address(db: Session, user: User, address_id: uuid.UUID, fields: Dict[str, Any]) -> Address:
    address = _owned(db, user, address_id)
    if fields.get("is_default"):
        _clear_default(db, user)
    for key in EDITABLE_FIELDS:
        if key in fields:
            setattr(address, key, fields[key])
    db.commit()
    return address


def delete_address(db: Session, user: User, address_id: uuid.UUID) -> None:
    address = _owned(db, user, address_id)
    was_default = address.is_default
    db.delete(address)
    db.flush()
    if was_default:
        # Promote the oldest remaining address.
        replacement = db.execute(
            select(Address).where(Address.user_id == user.id).order_by(Address.created_at).limit(1)
        ).scalar_one_or_none()
        if replacement is not None:
            replacement.is_default = True
    db.commit()
