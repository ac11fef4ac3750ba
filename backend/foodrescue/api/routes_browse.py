from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from foodrescue.db import get_db
from foodrescue.schemas.listing_schema import BundleOut, ProductOut
from foodrescue.schemas.merchant_schema import MerchantOut, MerchantSummaryOut
from foodrescue.services.discovery_service import DiscoveryService, ListingFilter

router = APIRouter(prefix="/api/browse", tags=["browse"])


def listing_filter(
    search: Optional[str] = Query(None, description="search term (name)"),
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    available_only: bool = True,
    exclude_allergens: List[str] = Query([]),
    dietary_tags: List[str] = Query([]),
    expiring_within_hours: Optional[float] = Query(None, gt=0),
    merchant_id: Optional[int] = None,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, ge=0),
) -> ListingFilter:
    return ListingFilter(
        search=search,
        category=category,
        min_price=min_price,
        max_price=max_price,
        available_only=available_only,
        exclude_allergens=exclude_allergens,
        dietary_tags=dietary_tags,
        expiring_within_hours=expiring_within_hours,
        merchant_id=merchant_id,
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
    )


@router.get("/merchants", summary="Merchants near a position")
def list_merchants(
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    if (latitude is None) != (longitude is None):
        raise HTTPException(status_code=400, detail="latitude and longitude go together")
    rows = DiscoveryService(db).list_merchants(latitude, longitude, radius_km)
    items = []
    for row in rows:
        base = MerchantOut.model_validate(row["merchant"]).model_dump()
        items.append(
            MerchantSummaryOut(
                **base,
                distance_km=row["distance_km"],
                available_products_count=row["available_products_count"],
                available_bundles_count=row["available_bundles_count"],
            )
        )
    return {"items": items, "total": len(items)}


@router.get("/products", summary="Browse products")
def list_products(f: ListingFilter = Depends(listing_filter), db: Session = Depends(get_db)):
    products = DiscoveryService(db).list_products(f)
    return {
        "items": [ProductOut.model_validate(p) for p in products],
        "total": len(products),
    }


@router.get("/bundles", summary="Browse bundles")
def list_bundles(f: ListingFilter = Depends(listing_filter), db: Session = Depends(get_db)):
    bundles = DiscoveryService(db).list_bundles(f)
    return {
        "items": [BundleOut.model_validate(b) for b in bundles],
        "total": len(bundles),
    }
