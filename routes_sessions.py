"""Dine-in sessions: explicit seating, lookups, session orders and checkout."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Response
from pydantic import Field
from pymongo.database import Database

from broadcast import publish_tables
from database import get_db, is_object_id, now, object_id, serialize_doc
from dinein import apply_dine_in_order, end_session, find_active_session, get_table, open_session, session_query
from errors import Conflict, NotFound, ValidationFailed
from pricing import expand_orders, price_items, verify_total
from routes_orders import OrderCreate, build_order_doc
from schemas import CamelModel, OrderLine, OrderStatus, PaymentStatus, Priority, SessionPayment

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


class SessionCreate(CamelModel):
    table_number: int
    customer_name: Optional[str] = None
    mobile: Optional[str] = None
    payment: Optional[SessionPayment] = None


class SessionUpdate(CamelModel):
    customer_name: Optional[str] = None
    mobile: Optional[str] = None
    payment: Optional[SessionPayment] = None
    active: Optional[bool] = None


class SessionOrder(CamelModel):
    items: List[OrderLine] = Field(..., min_length=1)
    total: float
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


def _with_orders(db: Database, session: Dict[str, Any]) -> Dict[str, Any]:
    """Replace order ids with the expanded order documents."""
    ids = [object_id(o) for o in session.get("orders") or [] if is_object_id(o)]
    orders = list(db["order"].find({"_id": {"$in": ids}}).sort("timestamp", 1)) if ids else []
    out = serialize_doc(session)
    out["orders"] = [serialize_doc(o) for o in expand_orders(db, orders)]
    return out


def _find(db: Database, ident: str) -> Dict[str, Any]:
    session = db["session"].find_one(session_query(ident))
    if not session:
        raise NotFound("Session not found")
    return session


@router.post("", status_code=201)
def create_session(payload: SessionCreate, db: Database = Depends(get_db)):
    table = get_table(db, payload.table_number)
    if table.get("status") == "occupied" or find_active_session(db, payload.table_number):
        raise Conflict("Table is currently occupied")
    session = open_session(
        db,
        payload.table_number,
        customer_name=payload.customer_name,
        mobile=payload.mobile,
        payment=payload.payment.model_dump(by_alias=True) if payload.payment else None,
    )
    publish_tables(db)
    return serialize_doc(session)


@router.get("/table/{number}")
def get_session_by_table(number: int, db: Database = Depends(get_db)):
    session = find_active_session(db, number)
    if not session:
        raise NotFound("Active session not found for table")
    return _with_orders(db, session)


@router.get("/{session_id}")
def get_session(session_id: str, db: Database = Depends(get_db)):
    return _with_orders(db, _find(db, session_id))


@router.patch("/{session_id}")
def update_session(session_id: str, patch: SessionUpdate, db: Database = Depends(get_db)):
    to_set = patch.model_dump(exclude_unset=True, by_alias=True)
    if not to_set:
        raise ValidationFailed("No updatable fields provided")
    to_set["updatedAt"] = now()
    session = db["session"].find_one_and_update(session_query(session_id), {"$set": to_set})
    if session is None:
        raise NotFound("Session not found")
    return serialize_doc(db["session"].find_one({"_id": session["_id"]}))


@router.post("/{session_id}/orders", status_code=201)
def add_session_order(
    session_id: str,
    payload: SessionOrder,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Database = Depends(get_db),
):
    session = _find(db, session_id)
    if not session.get("active"):
        raise Conflict("Session is not active")

    order = OrderCreate(
        **payload.model_dump(),
        table_number=session["tableNumber"],
        order_type="dine-in",
    )
    order.customer_name = order.customer_name or session.get("customerName")
    order.customer_phone = order.customer_phone or session.get("mobile")

    breakdown = price_items(
        db, order.items, tax=order.tax, discount=order.discount, extra_charges=order.extra_charges
    )
    verify_total(breakdown, order.total)
    result = apply_dine_in_order(db, build_order_doc(order, breakdown, idempotency_key), session=session)
    if result.replayed:
        response.status_code = 200
    else:
        publish_tables(db)
    return {"orderId": str(result.order["_id"]), "session": serialize_doc(result.session)}


@router.delete("/{session_id}")
def close_session(session_id: str, db: Database = Depends(get_db)):
    session = end_session(db, session_id)
    publish_tables(db)
    return {"ended": True, "session": serialize_doc(session)}
