from datetime import timedelta
from types import SimpleNamespace

from foodrescue.models.listing import ItemKind, ListingRef, is_available
from foodrescue.models.product import Product
from foodrescue.utils.clock import utcnow


def _listing(qty, expires_in):
    now = utcnow()
    return SimpleNamespace(available_quantity=qty, expires_at=now + expires_in), now


def test_available_with_stock_before_expiry():
    listing, now = _listing(2, timedelta(minutes=5))
    assert is_available(listing, now)


def test_sold_out_is_not_available():
    listing, now = _listing(0, timedelta(hours=1))
    assert not is_available(listing, now)


def test_expiry_exactly_now_is_not_available():
    listing, now = _listing(5, timedelta(0))
    assert not is_available(listing, now)


def test_naive_expiry_from_storage_is_treated_as_utc():
    now = utcnow()
    listing = SimpleNamespace(available_quantity=1, expires_at=(now + timedelta(seconds=1)).replace(tzinfo=None))
    assert is_available(listing, now)


def test_stored_listing_reports_expiry(db, seed):
    apples = db.get(Product, seed.apples_id)
    assert apples.is_available()
    assert not apples.is_expired()
    assert apples.is_expired(seed.expires_at)
    assert not apples.is_available(seed.expires_at + timedelta(seconds=1))
    assert apples.ref == ListingRef(ItemKind.PRODUCT, seed.apples_id)
    assert str(apples.discount_amount) == "3.00"
