from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from foodrescue.models.listing import ItemKind, ListingRef
from foodrescue.models.order import Order


class OrderLineIn(BaseModel):
    kind: ItemKind
    listing_id: int
    quantity: int = Field(..., gt=0)

    def as_line(self):
        return ListingRef(self.kind, self.listing_id), self.quantity


class PlaceOrderIn(BaseModel):
    customer_id: int
    merchant_id: int
    pickup_window_start: datetime
    pickup_window_end: datetime
    note: Optional[str] = None
    items: List[OrderLineIn]


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    item_kind: ItemKind
    item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    customer_id: int
    merchant_id: int
    status: str
    confirmation_code: str
    total_amount: Decimal
    pickup_window_start: datetime
    pickup_window_end: datetime
    picked_up_at: Optional[datetime] = None
    note: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]
    ready_for_pickup: bool = False
    overdue: bool = False

    @classmethod
    def from_order(cls, order: Order, now: Optional[datetime] = None) -> "OrderOut":
        out = cls.model_validate(order, from_attributes=True)
        out.ready_for_pickup = order.can_be_picked_up(now)
        out.overdue = order.is_overdue(now)
        return out


class StatusUpdateIn(BaseModel):
    merchant_id: int
    status: str
