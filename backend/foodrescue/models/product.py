from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from foodrescue.db import Base
from foodrescue.models.listing import ItemKind, ListingMixin


class Product(ListingMixin, Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_merchant_available", "merchant_id", "available_quantity"),
    )

    kind = ItemKind.PRODUCT

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(
        Integer, ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=False, index=True)
    original_price = Column(Numeric(10, 2), nullable=False)
    discounted_price = Column(Numeric(10, 2), nullable=False)
    discount_percentage = Column(Integer, nullable=False)
    available_quantity = Column(Integer, nullable=False, default=0)
    allergens = Column(JSON, nullable=True)
    dietary_tags = Column(JSON, nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    merchant = relationship("Merchant", back_populates="products")
    bundle_items = relationship(
        "BundleItem", back_populates="product", cascade="all, delete-orphan"
    )

    @property
    def price(self):
        return self.discounted_price

    def __repr__(self):
        return f"<Product id={self.id} name={self.name} qty={self.available_quantity}>"
