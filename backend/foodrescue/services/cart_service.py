from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from foodrescue.models.listing import ListingRef
from foodrescue.repositories.listing_repo import ListingRepository


class CartException(Exception):
    pass


class CrossMerchantCartError(CartException):
    def __init__(self, cart_merchant_id: int, merchant_id: int):
        super().__init__(
            f"Cart holds items from merchant {cart_merchant_id}; "
            f"cannot add items from merchant {merchant_id}. Check out or clear the cart first."
        )
        self.cart_merchant_id = cart_merchant_id
        self.merchant_id = merchant_id


class InvalidQuantityError(CartException):
    pass


class ListingUnavailable(CartException):
    pass


@dataclass
class CartLine:
    ref: ListingRef
    quantity: int
    unit_price: Decimal
    name: str
    merchant_id: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Cart:
    """
    Client-held cart. Never persisted; the HTTP layer round-trips it as a snapshot.

    Either empty or holding lines from exactly one merchant.
    """

    def __init__(self):
        self.lines: List[CartLine] = []
        self.merchant_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def _find(self, ref: ListingRef) -> Optional[CartLine]:
        return next((ln for ln in self.lines if ln.ref == ref), None)

    def can_add(self, merchant_id: int) -> bool:
        return self.is_empty or merchant_id == self.merchant_id

    def add(self, listing, qty: int = 1) -> CartLine:
        """
        Add ``qty`` of a listing, merging with an existing line for the same
        (kind, id). Rejected before any mutation when the listing belongs to a
        different merchant than the cart.
        """
        if qty <= 0:
            raise InvalidQuantityError("Quantity must be positive")
        if not self.can_add(listing.merchant_id):
            raise CrossMerchantCartError(self.merchant_id, listing.merchant_id)

        # the row decides its kind; a product and a bundle may share an id
        ref = listing.ref
        line = self._find(ref)
        if line:
            line.quantity += qty
        else:
            line = CartLine(
                ref=ref,
                quantity=qty,
                unit_price=Decimal(listing.price),
                name=listing.name,
                merchant_id=listing.merchant_id,
            )
            self.lines.append(line)
        if self.merchant_id is None:
            self.merchant_id = listing.merchant_id
        return line

    def remove(self, kind, listing_id: int) -> None:
        ref = ListingRef.of(kind, listing_id)
        self.lines = [ln for ln in self.lines if ln.ref != ref]
        if not self.lines:
            self.merchant_id = None

    def set_quantity(self, kind, listing_id: int, qty: int) -> None:
        if qty <= 0:
            self.remove(kind, listing_id)
            return
        line = self._find(ListingRef.of(kind, listing_id))
        if line:
            line.quantity = qty

    def clear(self) -> None:
        self.lines = []
        self.merchant_id = None

    def total(self) -> Decimal:
        return sum((ln.line_total for ln in self.lines), Decimal("0.00"))

    def item_count(self) -> int:
        return sum(ln.quantity for ln in self.lines)

    def order_lines(self) -> List[Tuple[ListingRef, int]]:
        return [(ln.ref, ln.quantity) for ln in self.lines]

    def to_snapshot(self) -> Dict:
        return {
            "merchant_id": self.merchant_id,
            "items": [
                {
                    "kind": ln.ref.kind.value,
                    "listing_id": ln.ref.id,
                    "quantity": ln.quantity,
                    "unit_price": ln.unit_price,
                    "name": ln.name,
                    "merchant_id": ln.merchant_id,
                }
                for ln in self.lines
            ],
            "total": self.total(),
            "item_count": self.item_count(),
        }

    @classmethod
    def from_snapshot(cls, data: Optional[Dict]) -> "Cart":
        """
        Rebuild a cart from a client snapshot. A snapshot mixing merchants is
        rejected the same way an add would be.
        """
        cart = cls()
        for it in (data or {}).get("items") or []:
            merchant_id = int(it["merchant_id"])
            if not cart.can_add(merchant_id):
                raise CrossMerchantCartError(cart.merchant_id, merchant_id)
            qty = int(it["quantity"])
            if qty <= 0:
                raise InvalidQuantityError("Quantity must be positive")
            ref = ListingRef.of(it["kind"], it["listing_id"])
            existing = cart._find(ref)
            if existing:
                existing.quantity += qty
                continue
            cart.lines.append(
                CartLine(
                    ref=ref,
                    quantity=qty,
                    unit_price=Decimal(str(it["unit_price"])),
                    name=it.get("name") or "",
                    merchant_id=merchant_id,
                )
            )
            cart.merchant_id = merchant_id
        return cart


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.listing_repo = ListingRepository(db)

    def add_item(self, cart: Cart, ref: ListingRef, qty: int) -> CartLine:
        """Resolve the listing and add it, snapshotting its current price and name."""
        listing = self.listing_repo.get(ref)
        if listing is None:
            raise ListingUnavailable(f"Listing {ref} not found")
        if not listing.is_available():
            raise ListingUnavailable(f"Listing {ref} is sold out or expired")
        return cart.add(listing, qty)
