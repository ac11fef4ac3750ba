from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    merchant_id: int
    name: str
    description: Optional[str] = None
    category: str
    original_price: Decimal
    discounted_price: Decimal
    discount_percentage: int
    available_quantity: int
    allergens: List[str] = Field(default_factory=list)
    dietary_tags: List[str] = Field(default_factory=list)
    expires_at: datetime


class BundleItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    product_id: int
    quantity: int
    position: int


class BundleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    merchant_id: int
    name: str
    description: Optional[str] = None
    total_original_price: Decimal
    bundle_price: Decimal
    discount_percentage: int
    available_quantity: int
    expires_at: datetime
    items: List[BundleItemOut] = Field(default_factory=list)
