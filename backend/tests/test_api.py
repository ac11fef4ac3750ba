from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from foodrescue.main import app
from foodrescue.services.order_service import OrderService, PlacementConflictError
from foodrescue.utils.clock import utcnow

client = TestClient(app)


@pytest.fixture
def window():
    start = utcnow() + timedelta(hours=1)
    return {
        "pickup_window_start": start.isoformat(),
        "pickup_window_end": (start + timedelta(hours=1)).isoformat(),
    }


def _payload(seed, window, items, merchant_id=None):
    return {
        "customer_id": seed.customer_id,
        "merchant_id": merchant_id or seed.grocer_id,
        **window,
        "items": items,
    }


def _apples(seed, qty):
    return {"kind": "product", "listing_id": seed.apples_id, "quantity": qty}


def test_place_and_fetch_order(seed, window):
    res = client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 2)]))
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["status"] == "pending"
    assert body["confirmation_code"].startswith("GR")
    assert Decimal(body["total_amount"]) == Decimal("6.00")
    assert body["items"][0]["name"] == "Apple box"

    res = client.get(f"/api/orders/{body['id']}", params={"customer_id": seed.customer_id})
    assert res.status_code == 200
    fetched = res.json()
    assert fetched["confirmation_code"] == body["confirmation_code"]
    assert fetched["ready_for_pickup"] is False
    assert fetched["overdue"] is False


def test_placement_errors_map_to_status_codes(seed, window):
    assert client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 4)])).status_code == 409

    foreign = {"kind": "product", "listing_id": seed.bread_id, "quantity": 1}
    assert client.post("/api/orders", json=_payload(seed, window, [foreign])).status_code == 403

    missing = {"kind": "bundle", "listing_id": 999, "quantity": 1}
    assert client.post("/api/orders", json=_payload(seed, window, [missing])).status_code == 404

    backwards = {
        "pickup_window_start": window["pickup_window_end"],
        "pickup_window_end": window["pickup_window_start"],
    }
    assert client.post("/api/orders", json=_payload(seed, backwards, [_apples(seed, 1)])).status_code == 400
    assert client.post("/api/orders", json=_payload(seed, window, [])).status_code == 400
    # quantity must be positive before it reaches the service
    assert client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 0)])).status_code == 422


def test_exhausted_placement_retries_map_to_503(seed, window, monkeypatch):
    def conflict(self, *args, **kwargs):
        raise PlacementConflictError("Could not store the order, please retry")

    monkeypatch.setattr(OrderService, "place_order", conflict)
    res = client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 1)]))
    assert res.status_code == 503
    assert "retry" in res.json()["detail"]


def test_idempotency_header_replays(seed, window):
    headers = {"Idempotency-Key": "api-key-1"}
    r1 = client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 1)]), headers=headers)
    r2 = client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 1)]), headers=headers)
    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r2.json()["id"] == r1.json()["id"]

    listing = client.get("/api/browse/products", params={"category": "produce"}).json()["items"][0]
    assert listing["available_quantity"] == 2


def test_status_updates(seed, window):
    order_id = client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 1)])).json()["id"]
    url = f"/api/orders/{order_id}/status"

    assert client.patch(url, json={"merchant_id": seed.bakery_id, "status": "confirmed"}).status_code == 403
    assert client.patch(url, json={"merchant_id": seed.grocer_id, "status": "shipped"}).status_code == 400

    res = client.patch(url, json={"merchant_id": seed.grocer_id, "status": "completed"})
    assert res.status_code == 200
    assert res.json()["picked_up_at"] is not None

    res = client.patch(url, json={"merchant_id": seed.grocer_id, "status": "cancelled"})
    assert res.status_code == 409
    assert "completed" in res.json()["detail"]

    assert client.patch("/api/orders/9999/status", json={"merchant_id": seed.grocer_id, "status": "ready"}).status_code == 404


def test_list_orders(seed, window):
    client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 1)]))
    res = client.get("/api/orders", params={"merchant_id": seed.grocer_id})
    assert res.status_code == 200
    assert res.json()["total"] == 1
    assert client.get("/api/orders", params={"merchant_id": seed.bakery_id}).json()["total"] == 0
    assert client.get("/api/orders").status_code == 400


def test_other_customer_cannot_read_order(seed, window):
    order_id = client.post("/api/orders", json=_payload(seed, window, [_apples(seed, 1)])).json()["id"]
    res = client.get(f"/api/orders/{order_id}", params={"customer_id": seed.customer_id + 1})
    assert res.status_code == 403


def test_cart_round_trip(seed):
    res = client.post("/api/cart/items", json={"kind": "product", "listing_id": seed.apples_id, "quantity": 2})
    assert res.status_code == 200, res.text
    cart = res.json()
    assert cart["merchant_id"] == seed.grocer_id
    assert Decimal(cart["total"]) == Decimal("6.00")

    res = client.post(
        "/api/cart/items",
        json={"cart": cart, "kind": "product", "listing_id": seed.bread_id, "quantity": 1},
    )
    assert res.status_code == 409

    res = client.post(
        "/api/cart/items",
        json={"cart": cart, "kind": "bundle", "listing_id": seed.box_id, "quantity": 1},
    )
    cart = res.json()
    assert cart["item_count"] == 3

    res = client.post(
        "/api/cart/items/quantity",
        json={"cart": cart, "kind": "product", "listing_id": seed.apples_id, "quantity": 0},
    )
    cart = res.json()
    assert [it["kind"] for it in cart["items"]] == ["bundle"]

    res = client.post("/api/cart/items/remove", json={"cart": cart, "kind": "bundle", "listing_id": seed.box_id})
    assert res.json() == {"merchant_id": None, "items": [], "total": "0.00", "item_count": 0}


def test_cart_rejects_unknown_listing(seed):
    res = client.post("/api/cart/items", json={"kind": "bundle", "listing_id": 999, "quantity": 1})
    assert res.status_code == 404
