import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from foodrescue.utils.clock import as_utc, utcnow


class ItemKind(str, enum.Enum):
    PRODUCT = "product"
    BUNDLE = "bundle"


@dataclass(frozen=True, order=True)
class ListingRef:
    """Reference to a product or a bundle: the (kind, id) pair carried by carts and order items."""

    kind: ItemKind
    id: int

    @classmethod
    def of(cls, kind, listing_id) -> "ListingRef":
        return cls(ItemKind(kind), int(listing_id))

    @property
    def lock_key(self) -> str:
        return f"{self.kind.value}_{self.id}"

    def __str__(self):
        return f"{self.kind.value}:{self.id}"


def is_available(listing, now: Optional[datetime] = None) -> bool:
    """
    available iff quantity > 0 and now < expiry.

    A listing expiring exactly at ``now`` is already expired.
    """
    now = as_utc(now) if now else utcnow()
    return listing.available_quantity > 0 and as_utc(listing.expires_at) > now


class ListingMixin:
    """
    Behaviour shared by Product and Bundle rows.

    Subclasses define ``kind``, ``price`` and ``original_price`` on top of the
    ``available_quantity`` / ``expires_at`` / ``merchant_id`` columns.
    """

    @property
    def ref(self) -> ListingRef:
        return ListingRef(self.kind, self.id)

    @property
    def discount_amount(self) -> Decimal:
        return Decimal(self.original_price) - Decimal(self.price)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = as_utc(now) if now else utcnow()
        return as_utc(self.expires_at) <= now

    def is_available(self, now: Optional[datetime] = None) -> bool:
        return is_available(self, now)
