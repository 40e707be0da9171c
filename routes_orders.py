"""Orders: placement, kitchen views and updates."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Response
from pydantic import Field, model_validator
from pymongo.database import Database

from broadcast import publish_tables
from database import get_db, next_sequence, now, object_id, serialize_doc
from dinein import apply_dine_in_order
from errors import NotFound, ValidationFailed
from pricing import PriceBreakdown, expand_orders, price_items, verify_total
from schemas import (
    LIVE_ORDER_EXCLUDED,
    CamelModel,
    Order,
    OrderLine,
    OrderStatus,
    OrderType,
    PaymentStatus,
    Priority,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])

# patching any of these reprices the order
PRICED_FIELDS = ("items", "tax", "discount", "extraCharges", "total")


class OrderCreate(CamelModel):
    items: List[OrderLine] = Field(..., min_length=1)
    total: float
    order_type: OrderType
    table_number: Optional[int] = None
    subtotal: Optional[float] = None
    tax: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    extra_charges: float = Field(0, ge=0)
    status: OrderStatus = "pending"
    timestamp: Optional[datetime] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    estimated_time: int = 45
    priority: Priority = "medium"
    special_requests: Optional[str] = None
    payment_status: PaymentStatus = "unpaid"
    payment_method: str = "pending"

    @model_validator(mode="after")
    def _dine_in_needs_table(self):
        if self.order_type == "dine-in" and self.table_number is None:
            raise ValueError("tableNumber is required for dine-in orders")
        return self


class OrderUpdate(CamelModel):
    table_number: Optional[int] = None
    items: Optional[List[OrderLine]] = Field(None, min_length=1)
    tax: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0)
    extra_charges: Optional[float] = Field(None, ge=0)
    total: Optional[float] = None
    status: Optional[OrderStatus] = None
    timestamp: Optional[datetime] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    estimated_time: Optional[int] = None
    priority: Optional[Priority] = None
    special_requests: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[str] = None
    order_type: Optional[OrderType] = None


def build_order_doc(payload: OrderCreate, breakdown: PriceBreakdown, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
    order = Order(
        table_number=payload.table_number,
        items=payload.items,
        subtotal=breakdown.subtotal,
        tax=breakdown.tax,
        discount=breakdown.discount,
        extra_charges=breakdown.extra_charges,
        total=breakdown.total,
        status=payload.status,
        timestamp=payload.timestamp or now(),
        customer_phone=payload.customer_phone,
        customer_name=payload.customer_name,
        estimated_time=payload.estimated_time,
        priority=payload.priority,
        special_requests=payload.special_requests,
        payment_status=payload.payment_status,
        payment_method=payload.payment_method,
        order_type=payload.order_type,
        idempotency_key=idempotency_key,
    )
    doc = order.model_dump(by_alias=True)
    if doc["idempotencyKey"] is None:
        del doc["idempotencyKey"]
    stamp = now()
    doc["createdAt"] = stamp
    doc["updatedAt"] = stamp
    return doc


def _list(db: Database, query: Dict[str, Any]) -> List[Dict[str, Any]]:
    orders = db["order"].find(query).sort("timestamp", -1)
    return [serialize_doc(o) for o in expand_orders(db, orders)]


# ----------------------------
# Reads
# ----------------------------
@router.get("")
def list_orders(db: Database = Depends(get_db)):
    return _list(db, {})


@router.get("/live")
def list_live_orders(db: Database = Depends(get_db)):
    """Orders still in the kitchen pipeline."""
    return _list(db, {"status": {"$nin": list(LIVE_ORDER_EXCLUDED)}})


@router.get("/counter")
def list_counter_orders(db: Database = Depends(get_db)):
    """Live dine-in and take-away orders handled at the counter."""
    return _list(
        db,
        {
            "orderType": {"$in": ["dine-in", "take-away"]},
            "status": {"$nin": list(LIVE_ORDER_EXCLUDED)},
        },
    )


@router.get("/takeaway")
def list_takeaway_orders(db: Database = Depends(get_db)):
    return _list(db, {"orderType": "take-away"})


@router.get("/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    doc = db["order"].find_one({"_id": object_id(order_id)})
    if not doc:
        raise NotFound("Order not found")
    return serialize_doc(expand_orders(db, [doc])[0])


# ----------------------------
# Writes
# ----------------------------
@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Database = Depends(get_db),
):
    breakdown = price_items(
        db,
        payload.items,
        tax=payload.tax,
        discount=payload.discount,
        extra_charges=payload.extra_charges,
    )
    verify_total(breakdown, payload.total)
    doc = build_order_doc(payload, breakdown, idempotency_key)

    if payload.order_type == "dine-in":
        result = apply_dine_in_order(db, doc)
        if result.replayed:
            response.status_code = 200
        else:
            publish_tables(db)
        return {
            "orderId": str(result.order["_id"]),
            "message": "Order created",
            "total": result.order["total"],
            "tableNumber": result.order["tableNumber"],
            "sessionId": result.session.get("sessionId"),
        }

    if doc["tableNumber"] is None:
        # take-away and delivery tickets get a running number per type
        doc["tableNumber"] = next_sequence(db, payload.order_type)
    order_id = db["order"].insert_one(doc).inserted_id
    logger.info("order %s created (%s, total %s)", order_id, payload.order_type, doc["total"])
    return {
        "orderId": str(order_id),
        "message": "Order created",
        "total": doc["total"],
        "tableNumber": doc["tableNumber"],
    }


def _carry_total_change(db: Database, order: Dict[str, Any], new_total: Optional[float]) -> None:
    """Keep the session bill and table amount in step with a repriced dine-in order."""
    if new_total is None or order.get("orderType") != "dine-in" or not order.get("sessionId"):
        return
    delta = round(float(new_total) - float(order.get("total") or 0), 2)
    if not delta:
        return
    db["session"].update_one({"sessionId": order["sessionId"]}, {"$inc": {"payment.total": delta}})
    db["table"].update_one(
        {"number": order.get("tableNumber"), "sessionId": order["sessionId"]}, {"$inc": {"amount": delta}}
    )
    publish_tables(db)


@router.patch("/{order_id}")
def update_order(order_id: str, patch: OrderUpdate, db: Database = Depends(get_db)):
    oid = object_id(order_id)
    to_set = patch.model_dump(exclude_unset=True, by_alias=True)
    if not to_set:
        raise ValidationFailed("No updatable fields provided")

    existing = db["order"].find_one({"_id": oid})
    if not existing:
        raise NotFound("Order not found")

    if any(k in to_set for k in PRICED_FIELDS):
        breakdown = price_items(
            db,
            to_set.get("items", existing.get("items") or []),
            tax=to_set.get("tax", existing.get("tax", 0)),
            discount=to_set.get("discount", existing.get("discount", 0)),
            extra_charges=to_set.get("extraCharges", existing.get("extraCharges", 0)),
        )
        verify_total(breakdown, to_set.get("total"))
        to_set.update(
            subtotal=breakdown.subtotal,
            tax=breakdown.tax,
            discount=breakdown.discount,
            extraCharges=breakdown.extra_charges,
            total=breakdown.total,
        )

    if to_set.get("orderType") == "dine-in":
        table = to_set.get("tableNumber", existing.get("tableNumber"))
        if table is None:
            raise ValidationFailed("tableNumber is required for dine-in orders")

    to_set["updatedAt"] = now()
    db["order"].update_one({"_id": oid}, {"$set": to_set})
    _carry_total_change(db, existing, to_set.get("total"))
    return serialize_doc(db["order"].find_one({"_id": oid}))
