"""Delivery orders and dispatch tracking."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import get_db, is_object_id, next_sequence, now, object_id, serialize_doc
from errors import Conflict, NotFound, ValidationFailed
from pricing import expand_orders, price_items, verify_total
from routes_orders import OrderCreate, build_order_doc
from schemas import CamelModel, Delivery, DeliveryAddress, DeliverySlot, DeliveryStatus, OrderLine, PaymentStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])

# statuses that require the kitchen to have finished the order
DISPATCH_STATUSES = ("out-for-delivery", "delivered")


class DeliveryCreate(CamelModel):
    items: List[OrderLine] = Field(..., min_length=1)
    address: DeliveryAddress
    total: Optional[float] = None
    tax: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    extra_charges: float = Field(0, ge=0)
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    payment_status: PaymentStatus = "unpaid"
    payment_method: str = "pending"
    eta: Optional[int] = Field(None, ge=0)
    slot: DeliverySlot = "ASAP"
    scheduled_time: Optional[datetime] = None
    contactless: bool = False
    instructions: str = ""


class DeliveryUpdate(CamelModel):
    status: Optional[DeliveryStatus] = None
    eta: Optional[int] = Field(None, ge=0)
    slot: Optional[DeliverySlot] = None
    scheduled_time: Optional[datetime] = None
    contactless: Optional[bool] = None
    instructions: Optional[str] = None


def full_address(address: DeliveryAddress) -> str:
    parts = [address.address1, address.address2, address.landmark, address.city, address.state, address.pincode]
    return ", ".join(p for p in parts if p)


@router.post("", status_code=201)
def create_delivery(payload: DeliveryCreate, db: Database = Depends(get_db)):
    breakdown = price_items(
        db, payload.items, tax=payload.tax, discount=payload.discount, extra_charges=payload.extra_charges
    )
    verify_total(breakdown, payload.total)
    order = OrderCreate(
        items=payload.items,
        total=breakdown.total,
        order_type="delivery",
        table_number=next_sequence(db, "delivery"),
        customer_phone=payload.customer_phone,
        customer_name=payload.customer_name,
        payment_status=payload.payment_status,
        payment_method=payload.payment_method,
        estimated_time=payload.eta or 45,
    )
    order_id = db["order"].insert_one(build_order_doc(order, breakdown)).inserted_id

    address = payload.address.model_copy(update={"full_address": full_address(payload.address)})
    delivery = Delivery(
        order_id=str(order_id),
        address=address,
        eta=payload.eta,
        slot=payload.slot,
        scheduled_time=payload.scheduled_time,
        contactless=payload.contactless,
        instructions=payload.instructions,
    )
    doc = delivery.model_dump(by_alias=True)
    stamp = now()
    doc["createdAt"] = stamp
    doc["updatedAt"] = stamp
    try:
        delivery_id = db["delivery"].insert_one(doc).inserted_id
    except PyMongoError:
        logger.exception("delivery insert failed, removing order %s", order_id)
        db["order"].delete_one({"_id": order_id})
        raise
    logger.info("delivery %s created for order %s", delivery_id, order_id)
    return {"orderId": str(order_id), "deliveryId": str(delivery_id), "total": breakdown.total}


@router.get("")
def list_deliveries(db: Database = Depends(get_db)):
    """Deliveries newest first, each with its expanded order."""
    deliveries = list(db["delivery"].find({}).sort("createdAt", -1))
    ids = [object_id(d["orderId"]) for d in deliveries if is_object_id(d.get("orderId"))]
    orders = {str(o["_id"]): o for o in expand_orders(db, db["order"].find({"_id": {"$in": ids}}))}
    result = []
    for d in deliveries:
        out = serialize_doc(d)
        out["order"] = serialize_doc(orders.get(str(d.get("orderId"))))
        result.append(out)
    return result


@router.patch("/{delivery_id}")
def update_delivery(delivery_id: str, patch: DeliveryUpdate, db: Database = Depends(get_db)):
    to_set = patch.model_dump(exclude_unset=True, by_alias=True)
    if not to_set:
        raise ValidationFailed("No updatable fields")
    delivery = db["delivery"].find_one({"_id": object_id(delivery_id, "delivery id")})
    if not delivery:
        raise NotFound("Delivery not found")

    status = to_set.get("status")
    order = None
    if status is not None:
        if status == "pending":
            raise ValidationFailed("Invalid delivery status update via this endpoint")
        order = db["order"].find_one({"_id": object_id(delivery["orderId"])})
        if not order:
            raise ValidationFailed("Linked order not found")
        if status in DISPATCH_STATUSES and order.get("status") != "served":
            raise Conflict("Linked order must be served before it can be dispatched")

    to_set["updatedAt"] = now()
    db["delivery"].update_one({"_id": delivery["_id"]}, {"$set": to_set})

    if status in ("delivered", "cancelled"):
        order_status = "served" if status == "delivered" else "cancelled"
        try:
            db["order"].update_one({"_id": order["_id"]}, {"$set": {"status": order_status, "updatedAt": now()}})
        except PyMongoError:
            logger.warning("could not propagate delivery status %s to order %s", status, order["_id"])
    return serialize_doc(db["delivery"].find_one({"_id": delivery["_id"]}))
