from datetime import datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, selectinload

from foodrescue.models.order import ACTIVE_STATUSES, Order
from foodrescue.utils.clock import as_utc, utcnow


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).where(Order.id == order_id).options(selectinload(Order.items))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalars().first()

    def code_exists(self, code: str) -> bool:
        return bool(self.db.scalar(select(exists().where(Order.confirmation_code == code))))

    def list(
        self,
        customer_id: Optional[int] = None,
        merchant_id: Optional[int] = None,
        status: Optional[str] = None,
        active_only: bool = False,
        pickup_today: bool = False,
        now: Optional[datetime] = None,
    ) -> List[Order]:
        query = self.db.query(Order).options(selectinload(Order.items))
        if customer_id is not None:
            query = query.filter(Order.customer_id == customer_id)
        if merchant_id is not None:
            query = query.filter(Order.merchant_id == merchant_id)
        if status:
            query = query.filter(Order.status == status)
        if active_only:
            query = query.filter(Order.status.in_(ACTIVE_STATUSES))
        if pickup_today:
            now = as_utc(now) if now else utcnow()
            day_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
            query = query.filter(
                Order.pickup_window_start >= day_start,
                Order.pickup_window_start < day_start + timedelta(days=1),
            )
        return query.order_by(Order.pickup_window_start, Order.id).all()
