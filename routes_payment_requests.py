"""Table-side bill requests and their cash confirmation."""

import logging
from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import Field
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings, get_settings
from database import create_document, get_db, now, object_id, serialize_doc
from errors import Conflict, NotFound
from schemas import CamelModel, Payment, PaymentRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment-requests", tags=["payment-requests"])


class PaymentRequestCreate(CamelModel):
    table_number: int = Field(..., ge=1)
    session_id: str = Field(..., min_length=1)


def _find(db: Database, request_id: str) -> Dict[str, Any]:
    doc = db["paymentrequest"].find_one({"_id": object_id(request_id, "payment request ID")})
    if not doc:
        raise NotFound("Payment request not found")
    return doc


def _unpaid_orders(db: Database, table_number: int):
    return list(db["order"].find({"tableNumber": table_number, "orderType": "dine-in", "paymentStatus": "unpaid"}))


@router.post("", status_code=201)
def create_payment_request(payload: PaymentRequestCreate, db: Database = Depends(get_db)):
    request = PaymentRequest(table_number=payload.table_number, session_id=payload.session_id, timestamp=now())
    request_id = create_document(db, "paymentrequest", request)
    return serialize_doc(db["paymentrequest"].find_one({"_id": object_id(request_id)}))


@router.get("")
def list_payment_requests(db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    """Latest open request per table with the amount still owed.

    Requests past their time-to-live, or for tables with nothing left to
    pay, are removed as they are encountered.
    """
    cutoff = now() - timedelta(minutes=settings.payment_request_ttl_minutes)
    expired = db["paymentrequest"].delete_many({"timestamp": {"$lt": cutoff}}).deleted_count
    if expired:
        logger.info("dropped %d expired payment request(s)", expired)

    latest: Dict[int, Dict[str, Any]] = {}
    for req in db["paymentrequest"].find({}).sort("timestamp", -1):
        latest.setdefault(req["tableNumber"], req)

    result = []
    for table_number, req in sorted(latest.items()):
        unpaid = _unpaid_orders(db, table_number)
        total = round(sum(float(o.get("total") or 0) for o in unpaid), 2)
        if total == 0:
            db["paymentrequest"].delete_many({"tableNumber": table_number})
            continue
        result.append(
            {
                "_id": str(req["_id"]),
                "tableNumber": table_number,
                "sessionId": req.get("sessionId"),
                "totalAmount": total,
                "timestamp": req["timestamp"],
                "unpaidOrderCount": len(unpaid),
            }
        )
    return result


@router.get("/{request_id}")
def get_payment_request(request_id: str, db: Database = Depends(get_db)):
    return serialize_doc(_find(db, request_id))


@router.post("/{request_id}/confirm")
def confirm_payment_request(request_id: str, db: Database = Depends(get_db)):
    """Settle every unpaid order on the table in cash.

    Orders are marked paid and served, one session payment is recorded for
    their sum and the request is removed. A failed payment insert puts the
    orders back as they were.
    """
    request = _find(db, request_id)
    table_number = request["tableNumber"]
    unpaid = _unpaid_orders(db, table_number)
    total = round(sum(float(o.get("total") or 0) for o in unpaid), 2)
    if total <= 0:
        db["paymentrequest"].delete_one({"_id": request["_id"]})
        raise Conflict("No unpaid orders for this table")

    ids = [o["_id"] for o in unpaid]
    stamp = now()
    db["order"].update_many(
        {"_id": {"$in": ids}, "paymentStatus": "unpaid"},
        {"$set": {"paymentStatus": "paid", "paymentMethod": "cash", "status": "served", "updatedAt": stamp}},
    )
    try:
        payment = Payment(amount=total, type="cash", payment_of="session", session_id=request["sessionId"])
        payment_id = create_document(db, "payment", payment)
    except PyMongoError:
        logger.exception("payment insert for table %s failed, restoring orders", table_number)
        for order in unpaid:
            db["order"].update_one(
                {"_id": order["_id"]},
                {
                    "$set": {
                        "paymentStatus": order.get("paymentStatus"),
                        "paymentMethod": order.get("paymentMethod"),
                        "status": order.get("status"),
                    }
                },
            )
        raise

    db["session"].update_one(
        {"sessionId": request["sessionId"]},
        {"$set": {"payment.status": "paid", "payment.method": "cash", "updatedAt": stamp}},
    )
    db["paymentrequest"].delete_one({"_id": request["_id"]})
    logger.info("payment request for table %s confirmed (%s)", table_number, total)
    return {
        "ok": True,
        "message": "Payment confirmed",
        "payment": serialize_doc(db["payment"].find_one({"_id": object_id(payment_id)})),
        "updatedOrders": len(unpaid),
        "totalAmount": total,
    }


@router.delete("/{request_id}")
def delete_payment_request(request_id: str, db: Database = Depends(get_db)):
    doc = _find(db, request_id)
    db["paymentrequest"].delete_one({"_id": doc["_id"]})
    return {"message": "Payment request deleted", "deleted": serialize_doc(doc)}
