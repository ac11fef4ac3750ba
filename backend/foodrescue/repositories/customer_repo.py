from typing import Optional

from sqlalchemy.orm import Session

from foodrescue.models.customer import Customer


class CustomerRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, customer_id: int) -> Optional[Customer]:
        return self.db.get(Customer, customer_id)

    def create(
        self,
        name: str,
        email: str,
        preferred_radius: float = 5.0,
        dietary_preferences: dict = None,
        phone: str = None,
    ) -> Customer:
        if not 0 < preferred_radius <= 50:
            raise ValueError("Preferred radius must be in (0, 50] km")
        c = Customer(
            name=name,
            email=email,
            phone=phone,
            preferred_radius=preferred_radius,
            dietary_preferences=dietary_preferences,
        )
        self.db.add(c)
        self.db.flush()
        return c
