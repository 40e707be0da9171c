"""Recorded payments and the per-table payments overview."""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import model_validator
from pymongo.database import Database

from database import create_document, get_db, get_documents, now, object_id, serialize_doc
from errors import NotFound
from schemas import CamelModel, Payment, PaymentOf, PaymentType

router = APIRouter(prefix="/api/payments", tags=["payments"])

REFERENCE_FIELD = {"order": "order_id", "reservation": "reservation_id", "session": "session_id"}
REFERENCE_ALIAS = {"order": "orderId", "reservation": "reservationId", "session": "sessionId"}


class PaymentCreate(Payment):
    @model_validator(mode="after")
    def _one_reference(self):
        field = REFERENCE_FIELD[self.payment_of]
        if not getattr(self, field):
            raise ValueError(f"{REFERENCE_ALIAS[self.payment_of]} required for {self.payment_of} payment")
        for other in REFERENCE_FIELD.values():
            if other != field:
                setattr(self, other, None)
        return self


class PaymentUpdate(CamelModel):
    type: PaymentType


def _find(db: Database, payment_id: str) -> Dict[str, Any]:
    doc = db["payment"].find_one({"_id": object_id(payment_id, "payment ID")})
    if not doc:
        raise NotFound("Payment not found")
    return doc


@router.get("")
def list_payments(
    payment_of: Optional[PaymentOf] = Query(None, alias="paymentOf"),
    payment_type: Optional[PaymentType] = Query(None, alias="type"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: Database = Depends(get_db),
):
    filters: Dict[str, Any] = {}
    if payment_of:
        filters["paymentOf"] = payment_of
    if payment_type:
        filters["type"] = payment_type
    if start_date or end_date:
        filters["createdAt"] = {}
        if start_date:
            filters["createdAt"]["$gte"] = start_date.replace(tzinfo=None)
        if end_date:
            filters["createdAt"]["$lte"] = end_date.replace(tzinfo=None)
    return [serialize_doc(p) for p in get_documents(db, "payment", filters, sort=[("createdAt", -1)])]


@router.get("/table_payments")
def table_payments(db: Database = Depends(get_db)):
    """Active sessions with their table and the payments taken so far."""
    result = []
    for session in db["session"].find({"active": True}).sort("tableNumber", 1):
        table = db["table"].find_one({"number": session["tableNumber"]})
        payments = get_documents(
            db, "payment", {"paymentOf": "session", "sessionId": session["sessionId"]}, sort=[("createdAt", -1)]
        )
        result.append(
            {
                "session": {
                    "_id": str(session["_id"]),
                    "sessionId": session["sessionId"],
                    "tableNumber": session["tableNumber"],
                    "customerName": session.get("customerName"),
                    "mobile": session.get("mobile"),
                    "active": session.get("active"),
                    "totalAmount": (session.get("payment") or {}).get("total", 0),
                    "createdAt": session.get("createdAt"),
                },
                "table": {
                    "_id": str(table["_id"]),
                    "number": table["number"],
                    "capacity": table.get("capacity"),
                    "status": table.get("status"),
                }
                if table
                else None,
                "payments": [serialize_doc(p) for p in payments],
            }
        )
    return result


@router.get("/{payment_id}")
def get_payment(payment_id: str, db: Database = Depends(get_db)):
    return serialize_doc(_find(db, payment_id))


@router.post("", status_code=201)
def create_payment(payload: PaymentCreate, db: Database = Depends(get_db)):
    payment_id = create_document(db, "payment", Payment(**payload.model_dump()))
    return serialize_doc(db["payment"].find_one({"_id": object_id(payment_id)}))


@router.patch("/{payment_id}")
def update_payment(payment_id: str, patch: PaymentUpdate, db: Database = Depends(get_db)):
    """Only the payment type may change once recorded."""
    doc = _find(db, payment_id)
    db["payment"].update_one({"_id": doc["_id"]}, {"$set": {"type": patch.type, "updatedAt": now()}})
    return serialize_doc(db["payment"].find_one({"_id": doc["_id"]}))


@router.delete("/{payment_id}")
def delete_payment(payment_id: str, db: Database = Depends(get_db)):
    doc = _find(db, payment_id)
    db["payment"].delete_one({"_id": doc["_id"]})
    return {"message": "Payment deleted", "payment": serialize_doc(doc)}
