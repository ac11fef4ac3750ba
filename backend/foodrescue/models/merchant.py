from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import relationship

from foodrescue.db import Base


class Merchant(Base):
    __tablename__ = "merchants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(64), nullable=True)
    address = Column(Text, nullable=False)
    # fixed at creation; discovery reads them on every proximity scan
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    pickup_instructions = Column(Text, nullable=True)
    specialty = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    products = relationship(
        "Product", back_populates="merchant", cascade="all, delete-orphan"
    )
    bundles = relationship(
        "Bundle", back_populates="merchant", cascade="all, delete-orphan"
    )
    orders = relationship("Order", back_populates="merchant", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Merchant id={self.id} name={self.name}>"
