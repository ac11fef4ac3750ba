from typing import Optional

from pydantic import BaseModel, ConfigDict


class MerchantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    address: str
    phone: Optional[str] = None
    latitude: float
    longitude: float
    pickup_instructions: Optional[str] = None
    specialty: Optional[str] = None


class MerchantSummaryOut(MerchantOut):
    distance_km: Optional[float] = None
    available_products_count: int = 0
    available_bundles_count: int = 0
