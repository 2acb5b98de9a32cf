"""Saved address book for signed-in customers."""

import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from src.api.deps import require_user
from src.api.schemas import AddressCreate, AddressResponse, AddressUpdate
from src.db.models import User
from src.db.session import get_db
from src.services import addresses as address_service

router = APIRouter(prefix="/user/addresses", tags=["Addresses"])


@router.get("", response_model=List[AddressResponse], summary="List saved addresses")
def list_addresses(db: Session = Depends(get_db), user: User = Depends(require_user)):
    return address_service.list_addresses(db, user)


@router.post("", response_model=AddressResponse, status_code=status.HTTP_201_CREATED, summary="Save an address")
def create_address(body: AddressCreate, db: Session = Depends(get_db), user: User = Depends(require_user)):
    return address_service.create_address(db, user, body.model_dump())


@router.patch("/{address_id}", response_model=AddressResponse, summary="Update an address")
def update_address(
    address_id: uuid.UUID, body: AddressUpdate, db: Session = Depends(get_db), user: User = Depends(require_user)
):
    return address_service.update_address(db, user, address_id, body.model_dump(exclude_unset=True))


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an address")
def delete_address(address_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(require_user)):
    address_service.delete_address(db, user, address_id)
