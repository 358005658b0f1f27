from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
from uuid import uuid4

from packages.shared.schemas.payment_v1 import store_timestamp
from services.relay.app.services.store_sql import SqlStoreGateway


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Insert a pending payment document into the SQL store (triggers a notification)"
    )
    parser.add_argument("--collection", default="payments")
    parser.add_argument("--payment-id", default=None, help="Document id (default: random)")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--full-name", default="Jane Doe")
    parser.add_argument("--phone", default="+15550001111")
    parser.add_argument("--email", default="jane@example.com")
    parser.add_argument("--product", default="Sample Product")
    parser.add_argument("--order-total", default="Rs 25.00")
    parser.add_argument("--variant-label", default=None)
    parser.add_argument("--variant-price", default=None)
    parser.add_argument("--payment-method", default="card")
    args = parser.parse_args()

    payment_id = args.payment_id or uuid4().hex[:20]
    doc: dict[str, object] = {
        "fullName": args.full_name,
        "phone": args.phone,
        "email": args.email,
        "productName": args.product,
        "orderTotal": args.order_total,
        "paymentMethod": args.payment_method,
        "status": "pending",
        "needsManualVerification": True,
        "createdAt": store_timestamp(datetime.now(timezone.utc)),
    }
    if args.variant_label:
        doc["variant"] = {"label": args.variant_label, "price": args.variant_price}

    store = SqlStoreGateway(url=args.database_url)
    asyncio.run(store.add(args.collection, payment_id, doc))
    print(f"Seeded {args.collection}/{payment_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
