import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from foodrescue.db import Base
from foodrescue.models.listing import ItemKind, ListingRef
from foodrescue.utils.clock import as_utc, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
ACTIVE_STATUSES = tuple(s.value for s in OrderStatus if s not in TERMINAL_STATUSES)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(
        Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    merchant_id = Column(
        Integer, ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)
    confirmation_code = Column(String(16), unique=True, nullable=False, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    pickup_window_start = Column(DateTime, nullable=False, index=True)
    pickup_window_end = Column(DateTime, nullable=False)
    picked_up_at = Column(DateTime, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    customer = relationship("Customer", back_populates="orders")
    merchant = relationship("Merchant", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED.value

    def can_be_picked_up(self, now: Optional[datetime] = None) -> bool:
        # window is inclusive at both ends
        now = as_utc(now) if now else utcnow()
        return (
            self.status == OrderStatus.READY.value
            and as_utc(self.pickup_window_start) <= now <= as_utc(self.pickup_window_end)
        )

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        # cancelled orders past their window count as overdue too
        now = as_utc(now) if now else utcnow()
        return as_utc(self.pickup_window_end) < now and not self.is_completed()

    def calculate_total(self) -> Decimal:
        return sum((it.total_price for it in self.items), Decimal("0.00"))

    def __repr__(self):
        return f"<Order id={self.id} code={self.confirmation_code} status={self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_kind = Column(String(16), nullable=False)
    # not a foreign key: the listing may be edited or deleted after purchase
    item_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def listing_ref(self) -> ListingRef:
        return ListingRef(ItemKind(self.item_kind), self.item_id)

    @property
    def total_price(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity
