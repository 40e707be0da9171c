"""Advance table bookings."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends
from pydantic import Field, model_validator
from pymongo.database import Database
from pymongo.errors import PyMongoError

from availability import assert_reservable, parse_slot, reservation_tables
from broadcast import publish_tables
from database import get_db, is_object_id, next_sequence, now, object_id, serialize_doc
from errors import NotFound, ValidationFailed
from schemas import ACTIVE_RESERVATION_STATUSES, CamelModel, Reservation, ReservationPayment, ReservationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reservations", tags=["reservations"])

RELEASING_STATUSES = ("cancelled", "completed", "no-show")


class ReservationCreate(CamelModel):
    customer_name: str = Field(..., min_length=1)
    date: str
    time: str
    guests: int = Field(..., ge=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    table_numbers: List[int] = Field(default_factory=list)
    table_number: Optional[int] = None
    status: ReservationStatus = "pending"
    special_requests: Optional[str] = None
    occasion: Optional[str] = None
    payment: Optional[ReservationPayment] = None
    session_minutes: int = Field(60, ge=1)
    notes: Optional[str] = None


class ReservationUpdate(CamelModel):
    customer_name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    guests: Optional[int] = Field(None, ge=1)
    table_numbers: Optional[List[int]] = None
    table_number: Optional[int] = None
    status: Optional[ReservationStatus] = None
    special_requests: Optional[str] = None
    occasion: Optional[str] = None
    payment: Optional[ReservationPayment] = None
    session_minutes: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _date_and_time_together(self):
        if (self.date is None) != (self.time is None):
            raise ValueError("date and time must be changed together")
        return self


def reservation_query(ident: str) -> Dict[str, Any]:
    """Match by public ``RES<n>`` id or by Mongo ``_id``."""
    if is_object_id(ident):
        return {"$or": [{"_id": object_id(ident)}, {"id": ident}]}
    return {"id": ident}


def _find(db: Database, ident: str) -> Dict[str, Any]:
    doc = db["reservation"].find_one(reservation_query(ident))
    if not doc:
        raise NotFound("Reservation not found")
    return doc


def _hold_tables(db: Database, reservation: Dict[str, Any], tables: Iterable[int]) -> None:
    """Mark free tables as reserved for this booking."""
    db["table"].update_many(
        {"number": {"$in": sorted(tables)}, "status": "available"},
        {
            "$set": {
                "status": "reserved",
                "customerName": reservation["customerName"],
                "guestCount": reservation["guests"],
                "sessionTime": reservation["time"],
                "sessionId": reservation["id"],
            }
        },
    )


def _seat_tables(db: Database, reservation: Dict[str, Any], tables: Iterable[int]) -> None:
    db["table"].update_many(
        {"number": {"$in": sorted(tables)}, "sessionId": {"$in": [None, reservation["id"]]}},
        {
            "$set": {
                "status": "occupied",
                "customerName": reservation["customerName"],
                "guestCount": reservation["guests"],
                "sessionId": reservation["id"],
            }
        },
    )


def _release_tables(db: Database, reservation: Dict[str, Any], tables: Iterable[int]) -> None:
    """Free tables still held by this booking."""
    db["table"].update_many(
        {"number": {"$in": sorted(tables)}, "sessionId": reservation["id"]},
        {"$set": {"status": "available", "sessionId": None, "customerName": None, "guestCount": None}},
    )


@router.get("")
def list_reservations(db: Database = Depends(get_db)):
    return [serialize_doc(r) for r in db["reservation"].find({}).sort("startAt", 1)]


@router.get("/{reservation_id}")
def get_reservation(reservation_id: str, db: Database = Depends(get_db)):
    return serialize_doc(_find(db, reservation_id))


@router.post("", status_code=201)
def create_reservation(payload: ReservationCreate, db: Database = Depends(get_db)):
    start = parse_slot(payload.date, payload.time)
    tables = set(payload.table_numbers)
    if payload.table_number is not None:
        tables.add(payload.table_number)
    if payload.status in ACTIVE_RESERVATION_STATUSES:
        assert_reservable(db, tables, start, payload.session_minutes)

    data = payload.model_dump()
    if payload.table_number is None and len(tables) == 1:
        data["table_number"] = next(iter(tables))
    data["table_numbers"] = sorted(tables)
    reservation = Reservation(id=f"RES{next_sequence(db, 'reservation')}", start_at=start, **data)
    doc = reservation.model_dump(by_alias=True)
    stamp = now()
    doc["createdAt"] = stamp
    doc["updatedAt"] = stamp
    if tables:
        doc["sessionId"] = doc["id"]
    doc["_id"] = db["reservation"].insert_one(doc).inserted_id

    if tables and payload.status in ("pending", "confirmed"):
        try:
            _hold_tables(db, doc, tables)
        except PyMongoError:
            logger.exception("could not hold tables for reservation %s, removing it", doc["id"])
            db["reservation"].delete_one({"_id": doc["_id"]})
            raise
        publish_tables(db)
    logger.info("reservation %s created for %s", doc["id"], start.isoformat())
    return serialize_doc(doc)


@router.patch("/{reservation_id}")
def update_reservation(reservation_id: str, patch: ReservationUpdate, db: Database = Depends(get_db)):
    to_set = patch.model_dump(exclude_unset=True, by_alias=True)
    if not to_set:
        raise ValidationFailed("No updatable fields provided")
    existing = _find(db, reservation_id)

    merged = {**existing, **to_set}
    if "date" in to_set:
        to_set["startAt"] = parse_slot(to_set["date"], to_set["time"])
        merged["startAt"] = to_set["startAt"]
    old_tables = reservation_tables(existing)
    new_tables = reservation_tables(
        {
            "tableNumbers": merged.get("tableNumbers"),
            "tableNumber": to_set["tableNumber"] if "tableNumber" in to_set else existing.get("tableNumber"),
        }
    )
    if "tableNumbers" in to_set or "tableNumber" in to_set:
        to_set["tableNumbers"] = sorted(new_tables)

    reactivated = (
        to_set.get("status") in ACTIVE_RESERVATION_STATUSES
        and existing.get("status") not in ACTIVE_RESERVATION_STATUSES
    )
    rescheduled = reactivated or any(k in to_set for k in ("startAt", "tableNumbers", "sessionMinutes"))
    if rescheduled and merged.get("status") in ACTIVE_RESERVATION_STATUSES:
        assert_reservable(
            db,
            new_tables,
            merged["startAt"],
            int(merged.get("sessionMinutes") or 60),
            exclude_id=existing["_id"],
        )

    if new_tables and not existing.get("sessionId"):
        to_set["sessionId"] = existing["id"]
    to_set["updatedAt"] = now()
    db["reservation"].update_one({"_id": existing["_id"]}, {"$set": to_set})
    updated = db["reservation"].find_one({"_id": existing["_id"]})

    touched = False
    if old_tables - new_tables:
        _release_tables(db, updated, old_tables - new_tables)
        touched = True
    status = updated.get("status")
    if new_tables and ("status" in to_set or old_tables != new_tables):
        if status in RELEASING_STATUSES:
            _release_tables(db, updated, new_tables)
        elif status == "seated":
            _seat_tables(db, updated, new_tables)
        else:
            _hold_tables(db, updated, new_tables)
        touched = True
    if touched:
        publish_tables(db)
    return serialize_doc(updated)


@router.delete("/{reservation_id}")
def delete_reservation(reservation_id: str, db: Database = Depends(get_db)):
    existing = _find(db, reservation_id)
    db["reservation"].delete_one({"_id": existing["_id"]})
    tables = reservation_tables(existing)
    if tables:
        _release_tables(db, existing, tables)
        publish_tables(db)
    return {"deleted": True}
