from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from foodrescue.db import Base
from foodrescue.models.listing import ItemKind, ListingMixin


class Bundle(ListingMixin, Base):
    __tablename__ = "bundles"
    __table_args__ = (
        Index("ix_bundles_merchant_available", "merchant_id", "available_quantity"),
    )

    kind = ItemKind.BUNDLE

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(
        Integer, ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    total_original_price = Column(Numeric(10, 2), nullable=False)
    bundle_price = Column(Numeric(10, 2), nullable=False)
    discount_percentage = Column(Integer, nullable=False)
    available_quantity = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=False, index=True)

    merchant = relationship("Merchant", back_populates="bundles")
    items = relationship(
        "BundleItem",
        back_populates="bundle",
        cascade="all, delete-orphan",
        order_by="BundleItem.position",
    )

    @property
    def price(self):
        return self.bundle_price

    @property
    def original_price(self):
        return self.total_original_price

    def __repr__(self):
        return f"<Bundle id={self.id} name={self.name} qty={self.available_quantity}>"


class BundleItem(Base):
    __tablename__ = "bundle_items"
    __table_args__ = (UniqueConstraint("bundle_id", "product_id", name="uq_bundle_product"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    bundle_id = Column(
        Integer, ForeignKey("bundles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)

    bundle = relationship("Bundle", back_populates="items")
    product = relationship("Product", back_populates="bundle_items")
