"""Gift registry routes."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from src.api.deps import get_current_user, get_email_client, require_user
from src.api.schemas import (
    PurchaseRequest,
    RegistryCreate,
    RegistryDetailResponse,
    RegistryItemCreate,
    RegistryItemUpdate,
    RegistryItemView,
    RegistryResponse,
    RegistryUpdate,
    ShareRegistryRequest,
    ShareRegistryResponse,
)
from src.db.models import User
from src.db.session import get_db
from src.integrations.email import EmailClient
from src.services import registry as registry_service

router = APIRouter(prefix="/registry", tags=["Registry"])


def _detail(result: dict) -> RegistryDetailResponse:
    return RegistryDetailResponse(
        registry=RegistryResponse.model_validate(result["registry"]),
        items=[RegistryItemView.model_validate(item) for item in result["items"]],
        is_owner=result["is_owner"],
    )


@router.post("", response_model=RegistryResponse, status_code=status.HTTP_201_CREATED, summary="Create a registry")
def create_registry(body: RegistryCreate, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return registry_service.create_registry(db, user, body.name, body.description, body.event_date)


@router.get("", response_model=RegistryDetailResponse, summary="The caller's registry")
def get_my_registry(db: Session = Depends(get_db), user: User = Depends(require_user)):
    registry = registry_service.get_user_registry(db, user)
    return _detail({"registry": registry, "items": registry_service.sorted_items(registry), "is_owner": True})


@router.get("/{share_code}", response_model=RegistryDetailResponse, summary="View a registry by share code")
def get_registry(share_code: str, db: Session = Depends(get_db), user: Optional[User] = Depends(get_current_user)):
    return _detail(registry_service.get_registry(db, share_code, user))


@router.patch("/{share_code}", response_model=RegistryResponse, summary="Update a registry")
def update_registry(
    share_code: str, body: RegistryUpdate, db: Session = Depends(get_db), user: User = Depends(require_user)
):
    return registry_service.update_registry(db, user, share_code, body.model_dump(exclude_unset=True))


@router.delete("/{share_code}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a registry")
def delete_registry(share_code: str, db: Session = Depends(get_db), user: User = Depends(require_user)):
    registry_service.delete_registry(db, user, share_code)


@router.post("/{share_code}/share", response_model=ShareRegistryResponse, summary="Email invitations")
def share_registry(
    share_code: str,
    body: ShareRegistryRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    email_client: EmailClient = Depends(get_email_client),
):
    sent = registry_service.share_registry(db, user, share_code, body.emails, body.message, email_client)
    return {"sent": sent}


@router.post(
    "/{share_code}/items", response_model=RegistryItemView, status_code=status.HTTP_201_CREATED, summary="Add an item"
)
def add_item(
    share_code: str, body: RegistryItemCreate, db: Session = Depends(get_db), user: User = Depends(require_user)
):
    return registry_service.add_item(
        db, user, share_code, body.variant_id, quantity=body.quantity, priority=body.priority, notes=body.notes
    )


@router.patch("/{share_code}/items/{item_id}", response_model=RegistryItemView, summary="Update an item")
def update_item(
    share_code: str,
    item_id: uuid.UUID,
    body: RegistryItemUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    return registry_service.update_item(db, user, share_code, item_id, body.model_dump(exclude_unset=True))


@router.delete("/{share_code}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove an item")
def remove_item(share_code: str, item_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_user)):
    registry_service.remove_item(db, user, share_code, item_id)


@router.post("/{share_code}/items/{item_id}/purchase", response_model=RegistryItemView, summary="Record a gift purchase")
def purchase_item(share_code: str, item_id: uuid.UUID, body: PurchaseRequest, db: Session = Depends(get_db)):
    return registry_service.purchase_item(db, share_code, item_id, body.quantity)
