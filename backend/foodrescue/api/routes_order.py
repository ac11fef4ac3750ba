from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from foodrescue.db import get_db
from foodrescue.schemas.order_schema import OrderOut, PlaceOrderIn, StatusUpdateIn
from foodrescue.services.confirmation_codes import CodeGenerationExhausted
from foodrescue.services.inventory_service import InsufficientInventoryError, InventoryLockTimeout
from foodrescue.services.order_service import (
    DuplicateRequestError,
    NotFoundError,
    OrderService,
    OrderServiceException,
    OwnershipMismatchError,
    PlacementConflictError,
)
from foodrescue.services.order_state import IllegalStatusTransitionError, InvalidStatusError
from foodrescue.utils.logging import get_logger

log = get_logger("api.orders")

router = APIRouter(tags=["orders"])

# most specific first; anything else from the order service is a 400
_STATUS_CODES = [
    (NotFoundError, 404),
    (OwnershipMismatchError, 403),
    (DuplicateRequestError, 409),
    (InsufficientInventoryError, 409),
    (IllegalStatusTransitionError, 409),
    (InvalidStatusError, 400),
    (InventoryLockTimeout, 503),
    (CodeGenerationExhausted, 503),
    (PlacementConflictError, 503),
    (OrderServiceException, 400),
]


def _http_error(e: Exception) -> HTTPException:
    for exc_type, code in _STATUS_CODES:
        if isinstance(e, exc_type):
            return HTTPException(status_code=code, detail=str(e))
    log.exception("unexpected error: %s", e)
    return HTTPException(status_code=500, detail=f"Internal server error: {type(e).__name__}")


@router.post("", summary="Place order", status_code=201, response_model=OrderOut)
def place_order(
    payload: PlaceOrderIn,
    db: Session = Depends(get_db),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    svc = OrderService(db)
    try:
        order = svc.place_order(
            customer_id=payload.customer_id,
            merchant_id=payload.merchant_id,
            pickup_window_start=payload.pickup_window_start,
            pickup_window_end=payload.pickup_window_end,
            lines=[it.as_line() for it in payload.items],
            note=payload.note,
            idempotency_key=idempotency_key,
        )
    except Exception as e:
        raise _http_error(e)
    return OrderOut.from_order(order)


@router.get("/{order_id}", summary="Get order", response_model=OrderOut)
def get_order(
    order_id: int,
    customer_id: Optional[int] = None,
    merchant_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    try:
        order = OrderService(db).get_order(order_id, customer_id=customer_id, merchant_id=merchant_id)
    except Exception as e:
        raise _http_error(e)
    return OrderOut.from_order(order)


@router.get("", summary="List orders")
def list_orders(
    customer_id: Optional[int] = None,
    merchant_id: Optional[int] = None,
    status: Optional[str] = None,
    active_only: bool = False,
    pickup_today: bool = Query(False, description="pickup window starts today (UTC)"),
    db: Session = Depends(get_db),
):
    try:
        orders = OrderService(db).list_orders(
            customer_id=customer_id,
            merchant_id=merchant_id,
            status=status,
            active_only=active_only,
            pickup_today=pickup_today,
        )
    except Exception as e:
        raise _http_error(e)
    items = [OrderOut.from_order(o) for o in orders]
    return {"items": items, "total": len(items)}


@router.patch("/{order_id}/status", summary="Update order status", response_model=OrderOut)
def update_status(order_id: int, payload: StatusUpdateIn, db: Session = Depends(get_db)):
    try:
        order = OrderService(db).update_status(order_id, payload.merchant_id, payload.status)
    except Exception as e:
        raise _http_error(e)
    return OrderOut.from_order(order)
