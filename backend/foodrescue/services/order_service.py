import hashlib
import json
import random
from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foodrescue.config import settings
from foodrescue.models.idempotency import IdempotencyStatus
from foodrescue.models.listing import ListingRef
from foodrescue.models.order import Order, OrderItem, OrderStatus
from foodrescue.repositories.customer_repo import CustomerRepository
from foodrescue.repositories.idempotency_repo import IdempotencyRepository
from foodrescue.repositories.listing_repo import ListingRepository
from foodrescue.repositories.merchant_repo import MerchantRepository
from foodrescue.repositories.order_repo import OrderRepository
from foodrescue.services.confirmation_codes import ConfirmationCodeGenerator
from foodrescue.services.inventory_service import InventoryService
from foodrescue.services.order_state import check_transition
from foodrescue.utils.clock import as_utc, utcnow
from foodrescue.utils.logging import get_logger
from foodrescue.utils.transactions import smart_transaction

log = get_logger("orders")


class OrderServiceException(Exception):
    pass


class InvalidPickupWindowError(OrderServiceException):
    pass


class EmptyOrderError(OrderServiceException):
    pass


class InvalidLineError(OrderServiceException):
    pass


class NotFoundError(OrderServiceException):
    pass


class ListingNotFoundError(NotFoundError):
    pass


class OwnershipMismatchError(OrderServiceException):
    pass


class DuplicateRequestError(OrderServiceException):
    pass


class PlacementConflictError(OrderServiceException):
    """Storage kept rejecting the order (confirmation code taken); safe to retry later."""


def merge_lines(lines: Iterable[Tuple[ListingRef, int]]) -> "OrderedDict[ListingRef, int]":
    """
    Collapse repeated listings into one quantity each, keeping first-seen order.
    """
    merged: "OrderedDict[ListingRef, int]" = OrderedDict()
    for ref, qty in lines:
        qty = int(qty)
        if qty <= 0:
            raise InvalidLineError(f"Quantity for {ref} must be positive")
        merged[ref] = merged.get(ref, 0) + qty
    if not merged:
        raise EmptyOrderError("An order needs at least one item")
    return merged


def request_fingerprint(customer_id, merchant_id, start, end, note, requested) -> str:
    """Stable hash of a placement request, used to tell a replay from a key reused for something else."""
    body = {
        "customer_id": customer_id,
        "merchant_id": merchant_id,
        "pickup_window_start": start.isoformat(),
        "pickup_window_end": end.isoformat(),
        "note": note,
        "items": sorted([ref.kind.value, ref.id, qty] for ref, qty in requested.items()),
    }
    return hashlib.sha256(json.dumps(body, sort_keys=True).encode("utf-8")).hexdigest()


class OrderService:
    def __init__(self, db: Session, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng
        self.inventory = InventoryService(db)
        self.listing_repo = ListingRepository(db)
        self.merchant_repo = MerchantRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.order_repo = OrderRepository(db)
        self.idem_repo = IdempotencyRepository(db)

    def _settle(self):
        # a read-only transaction left open by earlier lookups would turn our unit of work into a savepoint
        if self.db.in_transaction() and not (self.db.new or self.db.dirty or self.db.deleted):
            self.db.commit()

    def place_order(
        self,
        customer_id: int,
        merchant_id: int,
        pickup_window_start: datetime,
        pickup_window_end: datetime,
        lines: List[Tuple[ListingRef, int]],
        note: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Turn a submitted cart into a pending order, all or nothing.

        lines: list of (ListingRef, quantity) as produced by Cart.order_lines().
        Validation failures raise before anything is written; a failure while
        decrementing or persisting rolls every write of this placement back.
        """
        start, end = as_utc(pickup_window_start), as_utc(pickup_window_end)
        if end <= start:
            raise InvalidPickupWindowError("Pickup window end must be after its start")
        requested = merge_lines(lines)

        if idempotency_key:
            fingerprint = request_fingerprint(customer_id, merchant_id, start, end, note, requested)
            rec, created = self.idem_repo.begin(
                idempotency_key, "place_order", customer_id=customer_id, request_hash=fingerprint
            )
            if not created:
                if rec.customer_id != customer_id or rec.request_hash != fingerprint:
                    log.warning("idempotency key %r reused for a different request", idempotency_key)
                    raise DuplicateRequestError("Idempotency key was already used for a different request")
                if rec.status == IdempotencyStatus.COMPLETED and rec.order_id:
                    log.info("idempotent replay key=%r order=%s", idempotency_key, rec.order_id)
                    return self.get_order(rec.order_id, customer_id=customer_id)
                raise DuplicateRequestError("Duplicate request in progress, try again later")

        try:
            order = self._place_with_retries(customer_id, merchant_id, start, end, note, requested, now)
        except Exception as e:
            if idempotency_key:
                self.idem_repo.mark_failed(idempotency_key, str(e))
            raise

        if idempotency_key:
            self.idem_repo.mark_completed(idempotency_key, order.id)
        log.info(
            "placed order %s code=%s merchant=%s customer=%s total=%s",
            order.id, order.confirmation_code, merchant_id, customer_id, order.total_amount,
        )
        return order

    def _place_with_retries(self, customer_id, merchant_id, start, end, note, requested, now) -> Order:
        attempts = max(1, settings.PLACEMENT_MAX_RETRIES)
        for attempt in range(1, attempts + 1):
            self._settle()
            try:
                with self.inventory.hold(requested.keys()):
                    with smart_transaction(self.db):
                        order = self._place_once(customer_id, merchant_id, start, end, note, requested, now)
                return order
            except IntegrityError as e:
                # confirmation code taken by a concurrent placement between check and insert
                log.warning("placement attempt %d/%d hit a constraint: %s", attempt, attempts, e.orig)
                if attempt == attempts:
                    raise PlacementConflictError("Could not store the order, please retry") from e

    def _place_once(
        self,
        customer_id: int,
        merchant_id: int,
        start: datetime,
        end: datetime,
        note: Optional[str],
        requested: Dict[ListingRef, int],
        now: Optional[datetime],
    ) -> Order:
        if self.customer_repo.get(customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        merchant = self.merchant_repo.get(merchant_id)
        if merchant is None:
            raise NotFoundError(f"Merchant {merchant_id} not found")

        listings = self.listing_repo.get_many(requested.keys())
        for ref in requested:
            listing = listings.get(ref)
            if listing is None:
                raise ListingNotFoundError(f"Listing {ref} not found")
            if listing.merchant_id != merchant_id:
                raise OwnershipMismatchError(f"Listing {ref} does not belong to merchant {merchant_id}")

        # placement instant: availability is judged once, for every line
        now = as_utc(now) if now else utcnow()
        for ref, qty in requested.items():
            self.inventory.check(ref, qty, now)

        items = []
        for ref, qty in requested.items():
            listing = self.inventory.reserve(ref, qty, now)
            items.append(
                OrderItem(
                    item_kind=ref.kind.value,
                    item_id=ref.id,
                    name=listing.name,
                    quantity=qty,
                    unit_price=Decimal(listing.price),
                )
            )

        codes = ConfirmationCodeGenerator(self.order_repo.code_exists, rng=self.rng)
        order = Order(
            customer_id=customer_id,
            merchant_id=merchant_id,
            status=OrderStatus.PENDING.value,
            confirmation_code=codes.generate(merchant.name),
            pickup_window_start=start,
            pickup_window_end=end,
            note=note,
            items=items,
        )
        order.total_amount = order.calculate_total()
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int, customer_id: Optional[int] = None, merchant_id: Optional[int] = None) -> Order:
        """
        Load an order. When a customer or merchant id is given, the order must
        belong to that party.
        """
        order = self.order_repo.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if customer_id is not None and order.customer_id != customer_id:
            raise OwnershipMismatchError(f"Order {order_id} does not belong to customer {customer_id}")
        if merchant_id is not None and order.merchant_id != merchant_id:
            raise OwnershipMismatchError(f"Order {order_id} does not belong to merchant {merchant_id}")
        return order

    def list_orders(
        self,
        customer_id: Optional[int] = None,
        merchant_id: Optional[int] = None,
        status: Optional[str] = None,
        active_only: bool = False,
        pickup_today: bool = False,
        now: Optional[datetime] = None,
    ) -> List[Order]:
        if customer_id is None and merchant_id is None:
            raise OrderServiceException("customer_id or merchant_id is required")
        return self.order_repo.list(
            customer_id=customer_id,
            merchant_id=merchant_id,
            status=status,
            active_only=active_only,
            pickup_today=pickup_today,
            now=now,
        )

    def update_status(
        self,
        order_id: int,
        merchant_id: int,
        new_status: str,
        policy: Optional[str] = None,
        restore_inventory: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Merchant-driven status change. Only the order's merchant may call it;
        customers never mutate status.
        """
        if restore_inventory is None:
            restore_inventory = settings.RESTORE_INVENTORY_ON_CANCEL
        self._settle()
        with smart_transaction(self.db):
            order = self.order_repo.get(order_id, for_update=True)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            if order.merchant_id != merchant_id:
                raise OwnershipMismatchError(f"Order {order_id} does not belong to merchant {merchant_id}")

            target = check_transition(order.status, new_status, policy)
            previous = order.status
            order.status = target.value
            if target is OrderStatus.COMPLETED:
                order.picked_up_at = as_utc(now) if now else utcnow()
            if target is OrderStatus.CANCELLED and restore_inventory:
                for item in order.items:
                    if not self.inventory.restock(item.listing_ref, item.quantity):
                        log.info("order %s: %s no longer exists, not restocked", order_id, item.listing_ref)
            self.db.flush()
        log.info("order %s: %s -> %s", order_id, previous, target.value)
        return order
