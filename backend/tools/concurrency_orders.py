import argparse
import concurrent.futures
import json
import os
from collections import Counter
from datetime import datetime, timedelta, timezone

import requests

BASE = os.environ.get("FOODRESCUE_BASE", "http://127.0.0.1:8000")


def order_task(i, payload, idempotency_key=None):
    headers = {"Content-Type": "application/json"}
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    try:
        r = requests.post(f"{BASE}/api/orders", json=payload, headers=headers, timeout=20)
        return (i, r.status_code, r.text)
    except Exception as e:
        return (i, "ERR", str(e))


def listing_quantity(kind, listing_id, merchant_id):
    r = requests.get(
        f"{BASE}/api/browse/{kind}s",
        params={"merchant_id": merchant_id, "available_only": False},
        timeout=10,
    )
    r.raise_for_status()
    for it in r.json()["items"]:
        if it["id"] == listing_id:
            return it["available_quantity"]
    return None


def run_orders_concurrent(workers, payload, idempotency_key=None):
    line = payload["items"][0]
    before = listing_quantity(line["kind"], line["listing_id"], payload["merchant_id"])
    print(f"Running order test: workers={workers}, listing={line['kind']}:{line['listing_id']}, "
          f"qty={line['quantity']}, stock before={before}, idempotency_key={idempotency_key}")

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(order_task, i, payload, idempotency_key) for i in range(workers)]
        results = [f.result() for f in futures]

    print("Results:")
    for r in results:
        print(r)
    print("Status codes:", dict(Counter(r[1] for r in results)))

    ok = [json.loads(r[2]) for r in results if r[1] == 201]
    print("Unique order ids:", sorted({o["id"] for o in ok}))
    print("Confirmation codes:", sorted({o["confirmation_code"] for o in ok}))

    after = listing_quantity(line["kind"], line["listing_id"], payload["merchant_id"])
    orders = len({o["id"] for o in ok})
    print(f"Stock after={after}; sold={orders * line['quantity']}")
    if before is not None and after is not None and after + orders * line["quantity"] != before:
        print("WARNING: stock is not conserved")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fire concurrent order placements at one listing.")
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--customer", type=int, default=1)
    parser.add_argument("--merchant", type=int, default=1)
    parser.add_argument("--kind", choices=["product", "bundle"], default="product")
    parser.add_argument("--listing", type=int, default=1)
    parser.add_argument("--qty", type=int, default=1)
    parser.add_argument("--idempotency", default=None, help="send every request with this key")
    args = parser.parse_args()

    start = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "customer_id": args.customer,
        "merchant_id": args.merchant,
        "pickup_window_start": start.isoformat(),
        "pickup_window_end": (start + timedelta(hours=1)).isoformat(),
        "items": [{"kind": args.kind, "listing_id": args.listing, "quantity": args.qty}],
    }
    run_orders_concurrent(args.workers, payload, args.idempotency)
