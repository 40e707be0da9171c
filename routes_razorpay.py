"""Online payments through Razorpay."""

import json
import logging
import time
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database

from database import get_db
from errors import NotFound, ValidationFailed
from gateway import RazorpayClient, get_gateway, map_method
from pricing import PriceBreakdown, gateway_charges, menu_subtotal
from schemas import CamelModel, OrderLine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/razorpay", tags=["razorpay"])


class GatewayOrderRequest(CamelModel):
    items: List[OrderLine] = Field(..., min_length=1)
    tip: float = Field(0, ge=0)
    promo: Optional[str] = None


class ReservationOrderRequest(CamelModel):
    table_numbers: List[int] = Field(..., min_length=1)
    reservation_id: Optional[str] = None
    customer_name: Optional[str] = None


class VerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


def _paise(amount: float) -> int:
    return int(round(amount * 100))


def _receipt(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}"


def _order_summary(order: dict) -> dict:
    return {
        "id": order.get("id"),
        "amount": order.get("amount"),
        "currency": order.get("currency"),
        "receipt": order.get("receipt"),
    }


@router.post("/create-order")
def create_order(
    payload: GatewayOrderRequest,
    db: Database = Depends(get_db),
    gateway: RazorpayClient = Depends(get_gateway),
):
    """Price a delivery cart on the server and open a gateway order for it."""
    subtotal = menu_subtotal(db, payload.items)
    breakdown = PriceBreakdown(subtotal=subtotal, **gateway_charges(subtotal, payload.promo, payload.tip))
    amounts = breakdown.as_dict()
    amounts["totalInPaise"] = _paise(breakdown.total)

    notes = {
        "orderType": "food_delivery",
        "items": json.dumps([{"id": i.item_id, "qty": i.quantity} for i in payload.items]),
        "tip": payload.tip,
        "promo": payload.promo or "",
    }
    order = gateway.create_order(amounts["totalInPaise"], _receipt("order"), notes)
    logger.info("gateway order %s created for %s", order.get("id"), breakdown.total)
    return {"success": True, "order": _order_summary(order), "amounts": amounts}


@router.post("/create-reservation-order")
def create_reservation_order(
    payload: ReservationOrderRequest,
    db: Database = Depends(get_db),
    gateway: RazorpayClient = Depends(get_gateway),
):
    """Open a gateway order for the booking deposit of the chosen tables."""
    numbers = sorted(set(payload.table_numbers))
    tables = {t["number"]: t for t in db["table"].find({"number": {"$in": numbers}})}
    missing = [n for n in numbers if n not in tables]
    if missing:
        raise NotFound(f"Table not found: {', '.join(str(n) for n in missing)}")

    total = round(sum(float(tables[n].get("reservationPrice") or 0) for n in numbers), 2)
    if total <= 0:
        raise ValidationFailed("Selected tables have no reservation price")

    notes = {
        "orderType": "reservation",
        "tables": json.dumps(numbers),
        "reservationId": payload.reservation_id or "",
        "customerName": payload.customer_name or "",
    }
    order = gateway.create_order(_paise(total), _receipt("reservation"), notes)
    logger.info("gateway reservation order %s created for tables %s", order.get("id"), numbers)
    return {
        "success": True,
        "order": _order_summary(order),
        "amounts": {"total": total, "totalInPaise": _paise(total), "tables": numbers},
    }


@router.post("/verify-payment")
def verify_payment(payload: VerifyRequest, gateway: RazorpayClient = Depends(get_gateway)):
    if not gateway.verify_signature(payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature):
        logger.warning("invalid signature for gateway order %s", payload.razorpay_order_id)
        raise ValidationFailed("Invalid payment signature", success=False)

    payment = gateway.fetch_payment(payload.razorpay_payment_id)
    return {
        "success": True,
        "message": "Payment verified successfully",
        "payment": {
            "id": payment.get("id"),
            "amount": payment.get("amount"),
            "currency": payment.get("currency"),
            "status": payment.get("status"),
            "method": map_method(payment.get("method")),
            "orderId": payment.get("order_id"),
            "captured": payment.get("captured"),
        },
    }
