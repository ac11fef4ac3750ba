from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from foodrescue.models.bundle import Bundle, BundleItem
from foodrescue.models.merchant import Merchant
from foodrescue.models.product import Product
from foodrescue.services.geo_service import GeoIndex
from foodrescue.utils.clock import as_utc, utcnow


@dataclass
class ListingFilter:
    search: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    available_only: bool = True
    exclude_allergens: List[str] = field(default_factory=list)
    dietary_tags: List[str] = field(default_factory=list)
    expiring_within_hours: Optional[float] = None
    merchant_id: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None

    @property
    def has_geo(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _lower(values) -> set:
    return {str(v).strip().lower() for v in values or [] if str(v).strip()}


class DiscoveryService:
    """
    Browse queries for the customer side.

    The proximity filter runs first when a position is given; every other
    filter only narrows the listings that survive it. Results come back most
    urgent (earliest expiry) first.
    """

    def __init__(self, db: Session):
        self.db = db
        self.geo = GeoIndex(db)

    def _now(self) -> datetime:
        return utcnow()

    def _base_query(self, model, price_col, f: ListingFilter, now: datetime):
        query = self.db.query(model)
        if f.has_geo:
            ids = self.geo.nearby(f.latitude, f.longitude, f.radius_km)
            if not ids:
                return None
            query = query.filter(model.merchant_id.in_(ids))
        if f.merchant_id is not None:
            query = query.filter(model.merchant_id == f.merchant_id)
        if f.available_only:
            query = query.filter(model.available_quantity > 0, model.expires_at > now)
        if f.min_price is not None:
            query = query.filter(price_col >= f.min_price)
        if f.max_price is not None:
            query = query.filter(price_col <= f.max_price)
        if f.search:
            query = query.filter(model.name.ilike(f"%{f.search}%"))
        if f.expiring_within_hours is not None:
            query = query.filter(model.expires_at <= now + timedelta(hours=f.expiring_within_hours))
        return query.order_by(model.expires_at, model.id)

    def list_products(self, f: Optional[ListingFilter] = None, now: Optional[datetime] = None) -> List[Product]:
        f = f or ListingFilter()
        now = as_utc(now) if now else self._now()
        query = self._base_query(Product, Product.discounted_price, f, now)
        if query is None:
            return []
        if f.category:
            query = query.filter(Product.category == f.category)

        excluded, required = _lower(f.exclude_allergens), _lower(f.dietary_tags)
        products = query.all()
        if excluded:
            products = [p for p in products if not (_lower(p.allergens) & excluded)]
        if required:
            products = [p for p in products if required <= _lower(p.dietary_tags)]
        return products

    def list_bundles(self, f: Optional[ListingFilter] = None, now: Optional[datetime] = None) -> List[Bundle]:
        """
        Bundles carry no category of their own; allergen and dietary filters
        look through to the bundled products.
        """
        f = f or ListingFilter()
        now = as_utc(now) if now else self._now()
        query = self._base_query(Bundle, Bundle.bundle_price, f, now)
        if query is None:
            return []
        bundles = query.options(selectinload(Bundle.items).selectinload(BundleItem.product)).all()

        excluded, required = _lower(f.exclude_allergens), _lower(f.dietary_tags)
        if excluded:
            bundles = [
                b for b in bundles
                if not any(_lower(it.product.allergens) & excluded for it in b.items)
            ]
        if required:
            bundles = [
                b for b in bundles
                if b.items and all(required <= _lower(it.product.dietary_tags) for it in b.items)
            ]
        return bundles

    def _available_counts(self, model, now: datetime) -> Dict[int, int]:
        rows = (
            self.db.query(model.merchant_id, func.count(model.id))
            .filter(model.available_quantity > 0, model.expires_at > now)
            .group_by(model.merchant_id)
            .all()
        )
        return dict(rows)

    def list_merchants(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_km: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict]:
        """
        Merchants with their available listing counts. With a position, only
        merchants within ``radius_km`` (default settings.DEFAULT_RADIUS_KM),
        nearest first.
        """
        now = as_utc(now) if now else self._now()
        query = self.db.query(Merchant)
        distances = None
        if latitude is not None and longitude is not None:
            distances = self.geo.distances(latitude, longitude, radius_km)
            if not distances:
                return []
            query = query.filter(Merchant.id.in_(list(distances)))
        merchants = query.order_by(Merchant.name, Merchant.id).all()
        if distances is not None:
            merchants.sort(key=lambda m: distances[m.id])

        products = self._available_counts(Product, now)
        bundles = self._available_counts(Bundle, now)
        return [
            {
                "merchant": m,
                "distance_km": distances.get(m.id) if distances is not None else None,
                "available_products_count": products.get(m.id, 0),
                "available_bundles_count": bundles.get(m.id, 0),
            }
            for m in merchants
        ]
