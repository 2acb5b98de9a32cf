"""
Cart routes.

Guests are identified by the X-Cart-Session header; a newly minted session id
is returned in the same header and must be sent back on later requests.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from src.api.deps import CART_SESSION_HEADER, get_cart_session, get_current_user
from src.api.schemas import (
    AddCartItemRequest,
    ApplyDiscountRequest,
    CartItemMutationResponse,
    CartResponse,
    DiscountAppliedResponse,
    UpdateCartItemRequest,
)
from src.db.models import Cart, User
from src.db.session import get_db
from src.services import cart as cart_service

router = APIRouter(prefix="/cart", tags=["Cart"])


def _resolve_cart(
    response: Response,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user),
    session_id: Optional[str] = Depends(get_cart_session),
) -> Cart:
    cart, guest_session = cart_service.get_or_create_cart(db, user, session_id)
    if guest_session:
        response.headers[CART_SESSION_HEADER] = guest_session
    return cart


def _view(db: Session, cart: Cart) -> CartResponse:
    return CartResponse(**vars(cart_service.summarize(db, cart)))


@router.get("", response_model=CartResponse, summary="Current cart")
def get_cart(cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)):
    return _view(db, cart)


@router.delete("", response_model=CartResponse, summary="Empty the cart")
def clear_cart(cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)):
    cart_service.clear_cart(db, cart)
    return _view(db, cart)


@router.post("/items", response_model=CartItemMutationResponse, status_code=status.HTTP_201_CREATED, summary="Add an item")
def add_item(body: AddCartItemRequest, cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)):
    item = cart_service.add_item(db, cart, body.variant_id, body.quantity)
    return {"item_id": item.id, "quantity": item.quantity, "cart": _view(db, cart)}


@router.patch("/items/{item_id}", response_model=CartItemMutationResponse, summary="Change an item's quantity")
def update_item(
    item_id: uuid.UUID, body: UpdateCartItemRequest, cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)
):
    item = cart_service.update_item(db, cart, item_id, body.quantity)
    return {
        "item_id": item.id if item else None,
        "quantity": item.quantity if item else 0,
        "cart": _view(db, cart),
    }


@router.delete("/items/{item_id}", response_model=CartResponse, summary="Remove an item")
def remove_item(item_id: uuid.UUID, cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)):
    cart_service.remove_item(db, cart, item_id)
    return _view(db, cart)


@router.post("/discount", response_model=DiscountAppliedResponse, summary="Apply a discount code")
def apply_discount(body: ApplyDiscountRequest, cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)):
    amount = cart_service.apply_discount_code(db, cart, body.code)
    return {"code": cart.discount_code, "discount_cents": amount, "cart": _view(db, cart)}


@router.delete("/discount", response_model=CartResponse, summary="Remove the discount code")
def remove_discount(cart: Cart = Depends(_resolve_cart), db: Session = Depends(get_db)):
    cart_service.remove_discount_code(db, cart)
    return _view(db, cart)
