from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodrescue.models.bundle import Bundle, BundleItem
from foodrescue.models.listing import ItemKind, ListingRef
from foodrescue.models.product import Product
from foodrescue.utils.clock import as_utc, utcnow

Listing = Union[Product, Bundle]

_CENTS = Decimal("0.01")


class ListingValidationError(ValueError):
    pass


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _discount_percentage(original: Decimal, discounted: Decimal) -> int:
    pct = int(((original - discounted) / original * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(max(pct, 1), 99)


def _validate_common(original: Decimal, discounted: Decimal, quantity: int, expires_at: datetime, now: datetime):
    if original <= 0 or discounted <= 0:
        raise ListingValidationError("Prices must be positive")
    if discounted >= original:
        raise ListingValidationError("Discounted price must be less than original price")
    if quantity < 0:
        raise ListingValidationError("Available quantity cannot be negative")
    if as_utc(expires_at) <= now:
        raise ListingValidationError("Expiry must be in the future")


def model_for(kind: ItemKind):
    if kind is ItemKind.PRODUCT:
        return Product
    if kind is ItemKind.BUNDLE:
        return Bundle
    raise ValueError(f"Unknown listing kind: {kind!r}")


class ListingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, ref: ListingRef) -> Optional[Listing]:
        return self.db.get(model_for(ref.kind), ref.id)

    def get_for_update(self, ref: ListingRef) -> Optional[Listing]:
        """
        Fresh read of a listing, row-locked where the dialect supports it.
        populate_existing discards any stale copy held in the identity map.
        """
        model = model_for(ref.kind)
        stmt = (
            select(model)
            .where(model.id == ref.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalars().first()

    def get_many(self, refs: Iterable[ListingRef]) -> dict:
        refs = list(refs)
        found = {}
        for kind in ItemKind:
            ids = [r.id for r in refs if r.kind is kind]
            if not ids:
                continue
            model = model_for(kind)
            for row in self.db.query(model).filter(model.id.in_(ids)).all():
                found[row.ref] = row
        return found

    def create_product(
        self,
        merchant_id: int,
        name: str,
        category: str,
        original_price,
        discounted_price,
        available_quantity: int,
        expires_at: datetime,
        description: str = None,
        allergens: Optional[List[str]] = None,
        dietary_tags: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> Product:
        now = as_utc(now) if now else utcnow()
        original, discounted = _money(original_price), _money(discounted_price)
        _validate_common(original, discounted, available_quantity, expires_at, now)
        if not name or not category:
            raise ListingValidationError("Name and category are required")
        p = Product(
            merchant_id=merchant_id,
            name=name,
            description=description,
            category=category,
            original_price=original,
            discounted_price=discounted,
            discount_percentage=_discount_percentage(original, discounted),
            available_quantity=available_quantity,
            allergens=list(allergens or []),
            dietary_tags=list(dietary_tags or []),
            expires_at=as_utc(expires_at),
        )
        self.db.add(p)
        self.db.flush()
        return p

    def create_bundle(
        self,
        merchant_id: int,
        name: str,
        total_original_price,
        bundle_price,
        available_quantity: int,
        expires_at: datetime,
        items: List[Tuple[int, int]],
        description: str = None,
        now: Optional[datetime] = None,
    ) -> Bundle:
        """
        items: ordered list of (product_id, quantity); every product must belong
        to ``merchant_id``.
        """
        now = as_utc(now) if now else utcnow()
        original, discounted = _money(total_original_price), _money(bundle_price)
        _validate_common(original, discounted, available_quantity, expires_at, now)
        if not name:
            raise ListingValidationError("Name is required")

        product_ids = [pid for pid, _ in items]
        if len(set(product_ids)) != len(product_ids):
            raise ListingValidationError("A product may appear only once in a bundle")
        products = {
            p.id: p
            for p in self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        for pid, qty in items:
            prod = products.get(pid)
            if prod is None or prod.merchant_id != merchant_id:
                raise ListingValidationError(
                    f"Product {pid} does not belong to merchant {merchant_id}"
                )
            if qty <= 0:
                raise ListingValidationError("Bundle item quantity must be positive")

        b = Bundle(
            merchant_id=merchant_id,
            name=name,
            description=description,
            total_original_price=original,
            bundle_price=discounted,
            discount_percentage=_discount_percentage(original, discounted),
            available_quantity=available_quantity,
            expires_at=as_utc(expires_at),
        )
        for pos, (pid, qty) in enumerate(items):
            b.items.append(BundleItem(product_id=pid, quantity=qty, position=pos))
        self.db.add(b)
        self.db.flush()
        return b
