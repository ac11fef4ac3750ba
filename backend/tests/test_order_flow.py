import random
import re
from datetime import timedelta
from decimal import Decimal

import pytest

from foodrescue.models.bundle import Bundle
from foodrescue.models.listing import ItemKind, ListingRef
from foodrescue.models.order import Order, OrderStatus
from foodrescue.models.product import Product
from foodrescue.repositories.customer_repo import CustomerRepository
from foodrescue.repositories.idempotency_repo import IdempotencyRepository
from foodrescue.repositories.order_repo import OrderRepository
from foodrescue.services.inventory_service import InsufficientInventoryError
from foodrescue.services.order_service import (
    DuplicateRequestError,
    EmptyOrderError,
    InvalidLineError,
    InvalidPickupWindowError,
    ListingNotFoundError,
    NotFoundError,
    OrderService,
    OrderServiceException,
    OwnershipMismatchError,
    PlacementConflictError,
)
from foodrescue.services.order_state import IllegalStatusTransitionError
from foodrescue.utils.clock import utcnow


def P(listing_id):
    return ListingRef(ItemKind.PRODUCT, listing_id)


def B(listing_id):
    return ListingRef(ItemKind.BUNDLE, listing_id)


def _window():
    start = utcnow() + timedelta(hours=1)
    return start, start + timedelta(hours=1)


def _place(db, seed, lines, merchant_id=None, window=None, **kwargs):
    start, end = window or _window()
    return OrderService(db, rng=kwargs.pop("rng", None)).place_order(
        customer_id=kwargs.pop("customer_id", seed.customer_id),
        merchant_id=merchant_id or seed.grocer_id,
        pickup_window_start=start,
        pickup_window_end=end,
        lines=lines,
        **kwargs,
    )


def _qty(db, model, listing_id):
    db.expire_all()
    return db.get(model, listing_id).available_quantity


def _order_count(db):
    db.expire_all()
    return db.query(Order).count()


def test_place_order_decrements_and_snapshots(db, seed):
    order = _place(db, seed, [(P(seed.apples_id), 2), (B(seed.box_id), 1)], note="after 5pm")

    assert order.status == OrderStatus.PENDING.value
    assert re.fullmatch(r"GR\d{4}", order.confirmation_code)
    assert order.total_amount == Decimal("11.00")
    assert [(it.item_kind, it.name, it.quantity) for it in order.items] == [
        ("product", "Apple box", 2),
        ("bundle", "Surprise box", 1),
    ]
    assert _qty(db, Product, seed.apples_id) == 1
    assert _qty(db, Bundle, seed.box_id) == 3


def test_repeated_lines_are_merged(db, seed):
    order = _place(db, seed, [(P(seed.salad_id), 1), (P(seed.salad_id), 2)])
    assert len(order.items) == 1
    assert order.items[0].quantity == 3
    assert _qty(db, Product, seed.salad_id) == 7


def test_price_snapshot_survives_listing_edits(db, seed):
    order = _place(db, seed, [(P(seed.salad_id), 2)])

    salad = db.get(Product, seed.salad_id)
    salad.discounted_price = Decimal("1.00")
    salad.name = "Renamed salad"
    db.commit()

    again = OrderService(db).get_order(order.id)
    assert again.items[0].unit_price == Decimal("4.25")
    assert again.items[0].name == "Caesar salad"
    assert again.total_amount == Decimal("8.50")


def test_invalid_pickup_window(db, seed):
    start, _ = _window()
    with pytest.raises(InvalidPickupWindowError):
        OrderService(db).place_order(
            seed.customer_id, seed.grocer_id, start, start, [(P(seed.apples_id), 1)]
        )
    assert _order_count(db) == 0


def test_empty_and_non_positive_lines(db, seed):
    with pytest.raises(EmptyOrderError):
        _place(db, seed, [])
    with pytest.raises(InvalidLineError):
        _place(db, seed, [(P(seed.apples_id), 0)])
    assert _order_count(db) == 0


def test_listing_from_other_merchant_rejects_whole_order(db, seed):
    with pytest.raises(OwnershipMismatchError):
        _place(db, seed, [(P(seed.apples_id), 1), (P(seed.bread_id), 1)])
    assert _qty(db, Product, seed.apples_id) == 3
    assert _qty(db, Product, seed.bread_id) == 5
    assert _order_count(db) == 0


def test_unknown_listing_customer_or_merchant(db, seed):
    with pytest.raises(ListingNotFoundError):
        _place(db, seed, [(B(999), 1)])
    with pytest.raises(NotFoundError):
        _place(db, seed, [(P(seed.apples_id), 1)], customer_id=999)
    with pytest.raises(NotFoundError):
        _place(db, seed, [(P(seed.apples_id), 1)], merchant_id=999)
    assert _order_count(db) == 0


def test_insufficient_stock_leaves_every_line_untouched(db, seed):
    with pytest.raises(InsufficientInventoryError) as exc:
        _place(db, seed, [(P(seed.salad_id), 1), (P(seed.apples_id), 4)])
    assert exc.value.requested == 4
    assert exc.value.available == 3
    assert _qty(db, Product, seed.salad_id) == 10
    assert _qty(db, Product, seed.apples_id) == 3
    assert _order_count(db) == 0


def test_listing_expired_at_placement_time(db, seed):
    with pytest.raises(InsufficientInventoryError) as exc:
        _place(db, seed, [(P(seed.apples_id), 1)], now=seed.expires_at)
    assert "expired" in str(exc.value)
    assert _qty(db, Product, seed.apples_id) == 3


def test_codes_stay_unique_when_random_draws_collide(db, seed):
    # same seed: the second placement's first draw hits the first order's code
    first = _place(db, seed, [(P(seed.salad_id), 1)], rng=random.Random(42))
    second = _place(db, seed, [(P(seed.salad_id), 1)], rng=random.Random(42))
    assert first.confirmation_code != second.confirmation_code
    assert second.confirmation_code.startswith("GR")


class ScriptedRandom(random.Random):
    """Hands out preset suffixes in order, repeating the last one."""

    suffixes = ()

    def randint(self, a, b):
        if len(self.suffixes) > 1:
            head, self.suffixes = self.suffixes[0], self.suffixes[1:]
            return head
        return self.suffixes[0]


def scripted(*suffixes):
    rng = ScriptedRandom()
    rng.suffixes = suffixes
    return rng


def test_unique_index_rejection_is_retried_with_a_new_code(db, seed, monkeypatch):
    first = _place(db, seed, [(P(seed.apples_id), 1)], rng=scripted(4242))
    assert first.confirmation_code == "GR4242"

    # a concurrent writer stored GR4242 after our existence check
    monkeypatch.setattr(OrderRepository, "code_exists", lambda self, code: False)
    second = _place(db, seed, [(P(seed.salad_id), 2)], rng=scripted(4242, 5151))

    assert second.confirmation_code == "GR5151"
    assert _qty(db, Product, seed.salad_id) == 8
    assert _order_count(db) == 2


def test_running_out_of_placement_retries_writes_nothing(db, seed, monkeypatch):
    _place(db, seed, [(P(seed.apples_id), 1)], rng=scripted(4242))
    monkeypatch.setattr(OrderRepository, "code_exists", lambda self, code: False)

    with pytest.raises(PlacementConflictError) as exc:
        _place(db, seed, [(P(seed.apples_id), 1), (P(seed.salad_id), 3)], rng=scripted(4242))

    assert isinstance(exc.value, OrderServiceException)
    assert _qty(db, Product, seed.apples_id) == 2
    assert _qty(db, Product, seed.salad_id) == 10
    assert _order_count(db) == 1


def test_idempotency_key_replays_the_same_order(db, seed):
    window = _window()
    first = _place(db, seed, [(P(seed.apples_id), 1)], window=window, idempotency_key="key-1")
    second = _place(db, seed, [(P(seed.apples_id), 1)], window=window, idempotency_key="key-1")

    assert second.id == first.id
    assert _qty(db, Product, seed.apples_id) == 2
    assert _order_count(db) == 1


def test_idempotency_key_is_bound_to_customer_and_request(db, seed):
    other = CustomerRepository(db).create(name="Sam", email="sam@example.test")
    db.commit()
    window = _window()
    first = _place(db, seed, [(P(seed.apples_id), 1)], window=window, idempotency_key="shared")

    # another customer reusing the key gets neither the order nor a new one
    with pytest.raises(DuplicateRequestError):
        _place(
            db, seed, [(P(seed.bread_id), 1)], merchant_id=seed.bakery_id,
            window=window, customer_id=other.id, idempotency_key="shared",
        )
    # same customer, different payload
    with pytest.raises(DuplicateRequestError):
        _place(db, seed, [(P(seed.apples_id), 2)], window=window, idempotency_key="shared")

    assert _qty(db, Product, seed.bread_id) == 5
    assert _qty(db, Product, seed.apples_id) == 2
    assert _order_count(db) == 1
    replay = _place(db, seed, [(P(seed.apples_id), 1)], window=window, idempotency_key="shared")
    assert replay.id == first.id


def test_failed_key_can_be_retried(db, seed):
    with pytest.raises(InsufficientInventoryError):
        _place(db, seed, [(P(seed.apples_id), 9)], idempotency_key="key-2")
    order = _place(db, seed, [(P(seed.apples_id), 1)], idempotency_key="key-2")
    assert order.id is not None
    assert _qty(db, Product, seed.apples_id) == 2


def test_key_still_in_progress_is_a_duplicate(db, seed):
    IdempotencyRepository(db).begin("key-3", "place_order", customer_id=seed.customer_id)
    with pytest.raises(DuplicateRequestError):
        _place(db, seed, [(P(seed.apples_id), 1)], idempotency_key="key-3")
    assert _qty(db, Product, seed.apples_id) == 3


def test_status_updates_belong_to_the_order_merchant(db, seed):
    order = _place(db, seed, [(P(seed.apples_id), 1)])
    with pytest.raises(OwnershipMismatchError):
        OrderService(db).update_status(order.id, seed.bakery_id, "confirmed")
    with pytest.raises(NotFoundError):
        OrderService(db).update_status(12345, seed.grocer_id, "confirmed")


def test_completion_stamps_pickup_and_is_final(db, seed):
    svc = OrderService(db)
    order = _place(db, seed, [(P(seed.apples_id), 1)])

    for status in ("confirmed", "preparing", "ready", "completed"):
        order = svc.update_status(order.id, seed.grocer_id, status, policy="strict")
    assert order.status == "completed"
    assert order.picked_up_at is not None

    with pytest.raises(IllegalStatusTransitionError) as exc:
        svc.update_status(order.id, seed.grocer_id, "ready")
    assert "completed" in str(exc.value)
    assert svc.get_order(order.id).status == "completed"


def test_cancel_keeps_stock_sold_by_default(db, seed):
    order = _place(db, seed, [(P(seed.apples_id), 2)])
    OrderService(db).update_status(order.id, seed.grocer_id, "cancelled")
    assert _qty(db, Product, seed.apples_id) == 1


def test_cancel_can_restore_stock(db, seed):
    order = _place(db, seed, [(P(seed.apples_id), 2), (B(seed.box_id), 1)])
    OrderService(db).update_status(order.id, seed.grocer_id, "cancelled", restore_inventory=True)
    assert _qty(db, Product, seed.apples_id) == 3
    assert _qty(db, Bundle, seed.box_id) == 4


def test_orders_are_listed_per_party(db, seed):
    svc = OrderService(db)
    a = _place(db, seed, [(P(seed.apples_id), 1)])
    b = _place(db, seed, [(P(seed.bread_id), 1)], merchant_id=seed.bakery_id)
    svc.update_status(b.id, seed.bakery_id, "cancelled")

    assert [o.id for o in svc.list_orders(customer_id=seed.customer_id)] == [a.id, b.id]
    assert [o.id for o in svc.list_orders(merchant_id=seed.bakery_id)] == [b.id]
    assert [o.id for o in svc.list_orders(customer_id=seed.customer_id, active_only=True)] == [a.id]
    with pytest.raises(OrderServiceException):
        svc.list_orders()


def test_customer_cannot_read_someone_elses_order(db, seed):
    order = _place(db, seed, [(P(seed.apples_id), 1)])
    with pytest.raises(OwnershipMismatchError):
        OrderService(db).get_order(order.id, customer_id=seed.customer_id + 1)
