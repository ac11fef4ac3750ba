from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from foodrescue.models.listing import ItemKind


class CartLineIn(BaseModel):
    kind: ItemKind
    listing_id: int
    quantity: int
    unit_price: Decimal
    name: str = ""
    merchant_id: int


class CartIn(BaseModel):
    """Cart snapshot as the client last received it."""

    merchant_id: Optional[int] = None
    items: List[CartLineIn] = Field(default_factory=list)


class AddToCartIn(BaseModel):
    cart: CartIn = Field(default_factory=CartIn)
    kind: ItemKind
    listing_id: int
    quantity: int = 1


class RemoveFromCartIn(BaseModel):
    cart: CartIn
    kind: ItemKind
    listing_id: int


class SetQuantityIn(BaseModel):
    cart: CartIn
    kind: ItemKind
    listing_id: int
    quantity: int


class CartLineOut(BaseModel):
    kind: ItemKind
    listing_id: int
    quantity: int
    unit_price: Decimal
    name: str
    merchant_id: int


class CartOut(BaseModel):
    merchant_id: Optional[int] = None
    items: List[CartLineOut]
    total: Decimal
    item_count: int
