"""Dine-in session resolution and order application.

A table moves from *no session* to *active session* on its first dine-in
order (or an explicit seating) and to *ended* when the session is closed and
the table handed to cleaning. :func:`apply_dine_in_order` performs the
Order, Session and Table writes as one operation: a write that fails undoes
the ones before it, and a repeated idempotency key returns the order that was
already applied.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from availability import upcoming_reservation
from config import get_settings
from database import is_object_id, now, object_id
from errors import Conflict, NotFound
from schemas import Session

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return f"S_{secrets.token_hex(4)}"


def find_active_session(db: Database, table_number: int) -> Optional[Dict[str, Any]]:
    return db["session"].find_one({"tableNumber": int(table_number), "active": True})


def session_query(ident: str) -> Dict[str, Any]:
    """Match a session by public ``sessionId`` or by Mongo ``_id``."""
    if is_object_id(ident):
        return {"$or": [{"_id": object_id(ident)}, {"sessionId": ident}]}
    return {"sessionId": ident}


def get_table(db: Database, table_number: int) -> Dict[str, Any]:
    table = db["table"].find_one({"number": int(table_number)})
    if not table:
        raise NotFound("Table not found")
    return table


def open_session(
    db: Database,
    table_number: int,
    customer_name: Optional[str] = None,
    mobile: Optional[str] = None,
    payment: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create an active session and mark its table occupied."""
    session = Session(
        session_id=generate_session_id(),
        table_number=int(table_number),
        customer_name=customer_name,
        mobile=mobile,
        **({"payment": payment} if payment else {}),
    )
    doc = session.model_dump(by_alias=True)
    stamp = now()
    doc["createdAt"] = stamp
    doc["updatedAt"] = stamp
    doc["_id"] = db["session"].insert_one(doc).inserted_id
    try:
        db["table"].update_one(
            {"number": int(table_number)},
            {
                "$set": {
                    "status": "occupied",
                    "sessionId": doc["sessionId"],
                    "customerName": customer_name,
                },
                "$push": {"sessionHistory": doc["sessionId"]},
            },
        )
    except PyMongoError:
        logger.exception("failed to occupy table %s for session %s", table_number, doc["sessionId"])
        db["session"].delete_one({"_id": doc["_id"]})
        raise
    return doc


def resolve_session(db: Database, table_number: int, customer_phone: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the reusable active session for the table, if any.

    A phone number that differs from the one the session was opened with
    means another party is seated there.
    """
    session = find_active_session(db, table_number)
    if session is None:
        return None
    stored = session.get("mobile")
    if customer_phone and stored and str(customer_phone) != str(stored):
        raise Conflict("Table occupied by another customer")
    return session


def assert_not_reserved_soon(db: Database, table_number: int) -> None:
    window = get_settings().dine_in_reservation_window_minutes
    reservation = upcoming_reservation(db, table_number, now(), window)
    if reservation is not None:
        raise Conflict(
            "Table is reserved soon",
            reservationId=reservation.get("id"),
            reservationTime=reservation.get("time"),
        )


@dataclass
class DineInResult:
    order: Dict[str, Any]
    session: Dict[str, Any]
    replayed: bool = False
    session_created: bool = False


def apply_dine_in_order(
    db: Database,
    order_doc: Dict[str, Any],
    session: Optional[Dict[str, Any]] = None,
) -> DineInResult:
    """Persist a dine-in order and attach it to its session and table.

    ``order_doc`` is a fully priced order document. When ``session`` is not
    given it is resolved (or opened) from the order's table number.
    """
    key = order_doc.get("idempotencyKey")
    if key:
        existing = db["order"].find_one({"idempotencyKey": key})
        if existing is not None:
            attached = db["session"].find_one({"sessionId": existing.get("sessionId")}) or {}
            return DineInResult(order=existing, session=attached, replayed=True)

    table_number = int(order_doc["tableNumber"])
    table = get_table(db, table_number)
    if session is None:
        session = resolve_session(db, table_number, order_doc.get("customerPhone"))
    assert_not_reserved_soon(db, table_number)

    undo: List[Callable[[], Any]] = []
    created = False
    try:
        if session is None:
            session = open_session(
                db,
                table_number,
                customer_name=order_doc.get("customerName"),
                mobile=order_doc.get("customerPhone"),
            )
            created = True
            sid = session["_id"]
            prior = {k: table.get(k) for k in ("status", "sessionId", "customerName")}
            undo.append(lambda: db["session"].delete_one({"_id": sid}))
            undo.append(
                lambda: db["table"].update_one(
                    {"number": table_number},
                    {"$set": prior, "$pull": {"sessionHistory": session["sessionId"]}},
                )
            )

        order_doc["sessionId"] = session["sessionId"]
        try:
            order_id = db["order"].insert_one(order_doc).inserted_id
        except DuplicateKeyError:
            # a concurrent retry with the same key won the insert
            for step in reversed(undo):
                step()
            existing = db["order"].find_one({"idempotencyKey": key})
            attached = db["session"].find_one({"sessionId": existing.get("sessionId")}) or {}
            return DineInResult(order=existing, session=attached, replayed=True)
        order_doc["_id"] = order_id
        ref = str(order_id)
        amount = float(order_doc.get("total") or 0)
        undo.append(lambda: db["order"].delete_one({"_id": order_id}))

        db["session"].update_one(
            {"_id": session["_id"]},
            {"$push": {"orders": ref}, "$inc": {"payment.total": amount}, "$set": {"updatedAt": now()}},
        )
        undo.append(
            lambda: db["session"].update_one(
                {"_id": session["_id"]},
                {"$pull": {"orders": ref}, "$inc": {"payment.total": -amount}},
            )
        )

        db["table"].update_one(
            {"number": table_number},
            {
                "$push": {"orderIds": ref},
                "$inc": {"orderCount": 1, "amount": amount},
                "$set": {"status": "occupied", "sessionId": session["sessionId"]},
            },
        )
    except PyMongoError:
        logger.exception("dine-in order for table %s failed, rolling back %d step(s)", table_number, len(undo))
        for step in reversed(undo):
            try:
                step()
            except PyMongoError:
                logger.exception("compensation step failed for table %s", table_number)
        raise

    fresh = db["session"].find_one({"_id": session["_id"]}) or session
    return DineInResult(order=order_doc, session=fresh, session_created=created)


def end_session(db: Database, ident: str) -> Dict[str, Any]:
    """Close a session and hand its table over to cleaning."""
    session = db["session"].find_one_and_update(
        session_query(ident),
        {"$set": {"active": False, "updatedAt": now()}},
    )
    if session is None:
        raise NotFound("Session not found")
    session["active"] = False
    try:
        db["table"].update_one(
            {"number": session["tableNumber"]},
            {"$set": {"status": "cleaning", "sessionId": None, "customerName": None, "guestCount": None}},
        )
    except PyMongoError:
        logger.exception("failed to release table %s after ending session", session["tableNumber"])
    return session
