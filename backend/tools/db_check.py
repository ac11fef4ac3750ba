import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
KEY = sys.argv[2] if len(sys.argv) > 2 else None
CODE = sys.argv[3] if len(sys.argv) > 3 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Idempotency Records ===")
if KEY:
    cur.execute(
        "SELECT id, key, status, order_id, last_error, created_at, updated_at FROM idempotency_records WHERE key=?",
        (KEY,),
    )
else:
    cur.execute(
        "SELECT id, key, status, order_id, last_error, created_at, updated_at FROM idempotency_records ORDER BY created_at DESC LIMIT 20"
    )
for r in cur.fetchall():
    print(
        {
            "id": r[0],
            "key": r[1],
            "status": r[2],
            "order_id": r[3],
            "last_error": r[4],
            "created_at": r[5],
            "updated_at": r[6],
        }
    )

print("\n=== Recent Orders ===")
cur.execute(
    "SELECT id, confirmation_code, merchant_id, customer_id, status, total_amount, pickup_window_start, pickup_window_end, created_at "
    "FROM orders ORDER BY created_at DESC LIMIT 20"
)
for r in cur.fetchall():
    print(r)

if CODE:
    print(f"\n=== Items for order {CODE} ===")
    cur.execute(
        "SELECT oi.item_kind, oi.item_id, oi.name, oi.quantity, oi.unit_price FROM order_items oi "
        "JOIN orders o ON o.id = oi.order_id WHERE o.confirmation_code=?",
        (CODE,),
    )
    for r in cur.fetchall():
        print(r)

print("\n=== Listing Stock ===")
for table in ("products", "bundles"):
    cur.execute(
        f"SELECT id, merchant_id, name, available_quantity, expires_at FROM {table} ORDER BY expires_at"
    )
    for r in cur.fetchall():
        print(table[:-1], r)

conn.close()
