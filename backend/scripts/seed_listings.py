#!/usr/bin/env python3
"""
Seed demo merchants, a customer, products and bundles.

Listings expire relative to the time of seeding so a fresh seed is always
browsable. A JSON file with the same shape as DEMO_DATA can replace the
built-in set.

Usage:
    python scripts/seed_listings.py --reset
    python scripts/seed_listings.py --file demo.json --hours 12
"""
import argparse
import json
import os
import sys
from datetime import timedelta

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from foodrescue.db import SessionLocal, init_db
from foodrescue.repositories.customer_repo import CustomerRepository
from foodrescue.repositories.listing_repo import ListingRepository
from foodrescue.repositories.merchant_repo import MerchantRepository
from foodrescue.utils.clock import utcnow

DEMO_DATA = {
    "customers": [
        {"name": "Sam Rivera", "email": "sam@example.com", "preferred_radius": 3.0,
         "dietary_preferences": {"allergies": ["peanuts"], "preferences": ["vegetarian"]}},
    ],
    "merchants": [
        {
            "name": "Green Grocer",
            "email": "shop@greengrocer.example",
            "address": "12 Mulberry St, New York",
            "latitude": 40.7128,
            "longitude": -74.0060,
            "pickup_instructions": "Ring the bell at the side door",
            "specialty": "Organic produce",
            "products": [
                {"name": "Apple box", "category": "produce", "original_price": "6.00",
                 "discounted_price": "3.00", "available_quantity": 8, "expires_in_hours": 5,
                 "dietary_tags": ["vegan", "gluten-free"]},
                {"name": "Caesar salad", "category": "prepared", "original_price": "8.50",
                 "discounted_price": "4.25", "available_quantity": 6, "expires_in_hours": 3,
                 "allergens": ["dairy", "eggs"]},
            ],
            "bundles": [
                {"name": "Surprise box", "total_original_price": "14.50", "bundle_price": "5.00",
                 "available_quantity": 4, "expires_in_hours": 4,
                 "items": [["Apple box", 2], ["Caesar salad", 1]]},
            ],
        },
        {
            "name": "Bakery Bliss",
            "email": "hello@bakerybliss.example",
            "address": "80 Canal St, New York",
            "latitude": 40.7150,
            "longitude": -74.0020,
            "specialty": "Sourdough",
            "products": [
                {"name": "Sourdough loaf", "category": "bakery", "original_price": "7.00",
                 "discounted_price": "3.50", "available_quantity": 10, "expires_in_hours": 8,
                 "allergens": ["gluten"], "dietary_tags": ["vegan"]},
                {"name": "Croissant bag", "category": "bakery", "original_price": "9.00",
                 "discounted_price": "4.00", "available_quantity": 5, "expires_in_hours": 2,
                 "allergens": ["gluten", "dairy", "eggs"]},
            ],
        },
    ],
}


def seed(data: dict, hours: float = None):
    now = utcnow()
    db = SessionLocal()
    merchants = MerchantRepository(db)
    customers = CustomerRepository(db)
    listings = ListingRepository(db)
    counts = {"merchants": 0, "customers": 0, "products": 0, "bundles": 0}
    try:
        for c in data.get("customers", []):
            customers.create(**c)
            counts["customers"] += 1

        for m in data.get("merchants", []):
            fields = {k: v for k, v in m.items() if k not in ("products", "bundles")}
            merchant = merchants.create(**fields)
            counts["merchants"] += 1

            by_name = {}
            for p in m.get("products", []):
                p = dict(p)
                expires = now + timedelta(hours=hours or p.pop("expires_in_hours", 6))
                p.pop("expires_in_hours", None)
                product = listings.create_product(merchant.id, expires_at=expires, now=now, **p)
                by_name[product.name] = product.id
                counts["products"] += 1

            for b in m.get("bundles", []):
                b = dict(b)
                expires = now + timedelta(hours=hours or b.pop("expires_in_hours", 6))
                b.pop("expires_in_hours", None)
                items = [(by_name[name], qty) for name, qty in b.pop("items")]
                listings.create_bundle(merchant.id, expires_at=expires, items=items, now=now, **b)
                counts["bundles"] += 1

        db.commit()
        print("Seeded:", counts)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo food rescue data.")
    parser.add_argument("--file", "-f", default=None, help="JSON file shaped like the built-in demo data")
    parser.add_argument("--reset", action="store_true", help="drop and recreate all tables first")
    parser.add_argument("--hours", type=float, default=None, help="expire every listing this many hours from now")
    args = parser.parse_args()

    data = DEMO_DATA
    if args.file:
        if not os.path.exists(args.file):
            print("File not found:", args.file)
            sys.exit(1)
        with open(args.file, "r", encoding="utf-8") as f:
            data = json.load(f)

    init_db(reset=args.reset)
    seed(data, hours=args.hours)
