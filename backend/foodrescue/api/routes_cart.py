from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from foodrescue.db import get_db
from foodrescue.models.listing import ListingRef
from foodrescue.schemas.cart_schema import AddToCartIn, CartIn, CartOut, RemoveFromCartIn, SetQuantityIn
from foodrescue.services.cart_service import (
    Cart,
    CartService,
    CrossMerchantCartError,
    InvalidQuantityError,
    ListingUnavailable,
)

# the cart lives on the client; each call takes the last snapshot and returns the next one
router = APIRouter(prefix="/api/cart", tags=["cart"])


def _load(snapshot: CartIn) -> Cart:
    try:
        return Cart.from_snapshot(snapshot.model_dump(mode="json"))
    except CrossMerchantCartError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidQuantityError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _out(cart: Cart) -> CartOut:
    return CartOut.model_validate(cart.to_snapshot())


@router.post("/items", summary="Add item to cart", response_model=CartOut)
def add_item(payload: AddToCartIn, db: Session = Depends(get_db)):
    cart = _load(payload.cart)
    svc = CartService(db)
    try:
        svc.add_item(cart, ListingRef(payload.kind, payload.listing_id), payload.quantity)
    except CrossMerchantCartError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidQuantityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ListingUnavailable as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _out(cart)


@router.post("/items/remove", summary="Remove item", response_model=CartOut)
def remove_item(payload: RemoveFromCartIn):
    cart = _load(payload.cart)
    cart.remove(payload.kind, payload.listing_id)
    return _out(cart)


@router.post("/items/quantity", summary="Set item quantity", response_model=CartOut)
def set_quantity(payload: SetQuantityIn):
    cart = _load(payload.cart)
    cart.set_quantity(payload.kind, payload.listing_id, payload.quantity)
    return _out(cart)
