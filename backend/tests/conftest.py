import os
import tempfile
from datetime import timedelta
from types import SimpleNamespace

import pytest

# settings are read at import time, so point them at a throwaway directory first
_TMP = tempfile.mkdtemp(prefix="foodrescue_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["LOCKS_DIR"] = os.path.join(_TMP, "locks")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from foodrescue.db import SessionLocal, init_db  # noqa: E402
from foodrescue.repositories.customer_repo import CustomerRepository  # noqa: E402
from foodrescue.repositories.listing_repo import ListingRepository  # noqa: E402
from foodrescue.repositories.merchant_repo import MerchantRepository  # noqa: E402
from foodrescue.utils.clock import utcnow  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """
    Two merchants a few hundred metres apart in lower Manhattan, one customer,
    and listings that stay fresh for the next six hours.
    """
    merchants = MerchantRepository(db)
    listings = ListingRepository(db)
    expires = utcnow() + timedelta(hours=6)

    grocer = merchants.create(
        name="Green Grocer",
        email="hello@greengrocer.test",
        address="12 Mulberry St",
        latitude=40.7128,
        longitude=-74.0060,
        pickup_instructions="Side door",
    )
    bakery = merchants.create(
        name="Bakery Bliss",
        email="hi@bakerybliss.test",
        address="80 Canal St",
        latitude=40.7150,
        longitude=-74.0020,
    )
    customer = CustomerRepository(db).create(
        name="Alex", email="alex@example.test", dietary_preferences={"allergies": ["nuts"]}
    )

    apples = listings.create_product(
        grocer.id, "Apple box", "produce", "6.00", "3.00", 3, expires,
        dietary_tags=["vegan", "gluten-free"],
    )
    salad = listings.create_product(
        grocer.id, "Caesar salad", "prepared", "8.50", "4.25", 10, expires,
        allergens=["dairy", "eggs"],
    )
    bread = listings.create_product(
        bakery.id, "Sourdough loaf", "bakery", "7.00", "3.50", 5, expires,
        allergens=["gluten"], dietary_tags=["vegan"],
    )
    box = listings.create_bundle(
        grocer.id, "Surprise box", "14.50", "5.00", 4, expires,
        items=[(apples.id, 2), (salad.id, 1)],
    )
    db.commit()

    return SimpleNamespace(
        grocer_id=grocer.id,
        bakery_id=bakery.id,
        customer_id=customer.id,
        apples_id=apples.id,
        salad_id=salad.id,
        bread_id=bread.id,
        box_id=box.id,
        expires_at=expires,
    )
