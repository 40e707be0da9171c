"""Dashboard sales overview."""

from collections import Counter
from datetime import timedelta
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from database import get_db, now
from pricing import menu_by_id

router = APIRouter(prefix="/api/analytics", tags=["analytics"])

RANGES = {
    "24h": timedelta(hours=24),
    "today": timedelta(hours=24),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}
POPULAR_LIMIT = 10


@router.get("/overview")
def overview(
    range_: Literal["24h", "today", "week", "month"] = Query("24h", alias="range"),
    db: Database = Depends(get_db),
):
    """Revenue, order mix, hourly buckets and best sellers since the range start."""
    start = now() - RANGES[range_]
    orders = list(db["order"].find({"timestamp": {"$gte": start}}))

    revenue = sum(float(o.get("total") or 0) for o in orders)
    customers = {o["customerPhone"] for o in orders if o.get("customerPhone")}
    status_counts = Counter(o.get("status") or "unknown" for o in orders)
    payment_methods = Counter(o.get("paymentMethod") or "unknown" for o in orders)

    hourly = [{"hour": f"{h}:00", "revenue": 0.0, "orders": 0} for h in range(24)]
    sold: Counter = Counter()
    for order in orders:
        bucket = hourly[order["timestamp"].hour]
        bucket["revenue"] = round(bucket["revenue"] + float(order.get("total") or 0), 2)
        bucket["orders"] += 1
        for line in order.get("items") or []:
            sold[line.get("itemId")] += int(line.get("quantity") or 0)

    top = sold.most_common(POPULAR_LIMIT)
    menu = menu_by_id(db, (item_id for item_id, _ in top))
    popular = [
        {
            "itemId": item_id,
            "name": menu[item_id]["name"] if item_id in menu else f"item-{item_id}",
            "quantity": qty,
            "price": menu[item_id]["price"] if item_id in menu else 0,
        }
        for item_id, qty in top
    ]

    return {
        "totalRevenue": round(revenue, 2),
        "avgOrder": round(revenue / len(orders), 2) if orders else 0,
        "totalOrders": len(orders),
        "uniqueCustomers": len(customers),
        "statusCounts": dict(status_counts),
        "paymentMethods": dict(payment_methods),
        "hourly": hourly,
        "popular": popular,
        "range": range_,
    }
