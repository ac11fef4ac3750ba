from typing import Optional

from sqlalchemy.orm import Session

from foodrescue.models.merchant import Merchant


class MerchantRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, merchant_id: int) -> Optional[Merchant]:
        return self.db.get(Merchant, merchant_id)

    def coordinates(self):
        """(id, latitude, longitude) rows for the proximity scan."""
        return self.db.query(Merchant.id, Merchant.latitude, Merchant.longitude).all()

    def create(
        self,
        name: str,
        email: str,
        address: str,
        latitude: float,
        longitude: float,
        phone: str = None,
        pickup_instructions: str = None,
        specialty: str = None,
    ) -> Merchant:
        if latitude is None or longitude is None:
            raise ValueError("Merchant coordinates are required")
        m = Merchant(
            name=name,
            email=email,
            address=address,
            latitude=float(latitude),
            longitude=float(longitude),
            phone=phone,
            pickup_instructions=pickup_instructions,
            specialty=specialty,
        )
        self.db.add(m)
        self.db.flush()
        return m
