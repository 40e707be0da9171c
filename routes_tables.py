"""Floor tables: CRUD, availability, housekeeping activities and live stream."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from availability import available_tables, parse_at
from broadcast import broadcaster, publish_tables
from database import get_db, now, serialize_doc
from errors import Conflict, NotFound, ValidationFailed
from schemas import ActivityStatus, ActivityType, CamelModel, Table, TableActivity, TableStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tables", tags=["tables"])

ACTIVE_ACTIVITY = ("pending", "in-progress")

# table status while an activity of the given type is running
ACTIVITY_STATUS = {
    "cleaning": "cleaning",
    "maintenance": "maintenance",
    "setup": "setup",
}


class TableCreate(CamelModel):
    number: int
    capacity: int = Field(4, ge=1)
    status: TableStatus = "available"
    section: Optional[str] = None
    reservation_price: float = Field(0, ge=0)


class TableUpdate(CamelModel):
    number: Optional[int] = None
    capacity: Optional[int] = Field(None, ge=1)
    status: Optional[TableStatus] = None
    section: Optional[str] = None
    customer_name: Optional[str] = None
    guest_count: Optional[int] = None
    session_time: Optional[str] = None
    order_count: Optional[int] = None
    amount: Optional[float] = None
    session_id: Optional[str] = None
    reservation_price: Optional[float] = Field(None, ge=0)
    last_cleaned: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None


class ActivityCreate(CamelModel):
    type: ActivityType
    status: ActivityStatus = "pending"
    assigned_to: Optional[str] = None
    start_time: Optional[datetime] = None
    notes: Optional[str] = None
    estimated_duration: Optional[int] = Field(None, ge=0)


def _find(db: Database, number: int):
    table = db["table"].find_one({"number": number})
    if not table:
        raise NotFound("Table not found")
    return table


# ----------------------------
# Reads
# ----------------------------
@router.get("")
def list_tables(db: Database = Depends(get_db)):
    return [serialize_doc(t) for t in db["table"].find({}).sort("number", 1)]


@router.get(
    "/stream",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/event-stream": {}}}},
)
async def stream_tables(request: Request) -> StreamingResponse:
    """Push the full table list whenever a table changes."""
    queue = broadcaster.subscribe()
    logger.info("table stream opened (%d client(s))", broadcaster.client_count)
    return StreamingResponse(
        broadcaster.stream(queue, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/available")
def list_available_tables(
    at: Optional[str] = None,
    date: Optional[str] = None,
    time: Optional[str] = None,
    duration: int = Query(60, ge=1),
    db: Database = Depends(get_db),
):
    start = parse_at(at, date, time)
    return available_tables(db, start, duration)


@router.get("/{number}")
def get_table(number: int, db: Database = Depends(get_db)):
    return serialize_doc(_find(db, number))


# ----------------------------
# Writes
# ----------------------------
@router.post("", status_code=201)
def create_table(payload: TableCreate, db: Database = Depends(get_db)):
    if db["table"].find_one({"number": payload.number}):
        raise Conflict("Table number already exists")
    doc = Table(**payload.model_dump()).model_dump(by_alias=True)
    stamp = now()
    doc["createdAt"] = stamp
    doc["updatedAt"] = stamp
    try:
        db["table"].insert_one(doc)
    except DuplicateKeyError:
        raise Conflict("Table number already exists")
    publish_tables(db)
    return serialize_doc(doc)


@router.patch("/{number}")
def update_table(number: int, patch: TableUpdate, db: Database = Depends(get_db)):
    to_set = patch.model_dump(exclude_unset=True, by_alias=True)
    if not to_set:
        raise ValidationFailed("No updatable fields provided")
    new_number = to_set.get("number")
    if new_number is not None and new_number != number and db["table"].find_one({"number": new_number}):
        raise Conflict("Table number already exists")
    to_set["updatedAt"] = now()
    try:
        result = db["table"].update_one({"number": number}, {"$set": to_set})
    except DuplicateKeyError:
        raise Conflict("Table number already exists")
    if result.matched_count == 0:
        raise NotFound("Table not found")
    publish_tables(db)
    return serialize_doc(db["table"].find_one({"number": to_set.get("number", number)}))


@router.delete("/{number}")
def delete_table(number: int, db: Database = Depends(get_db)):
    result = db["table"].delete_one({"number": number})
    if result.deleted_count == 0:
        raise NotFound("Table not found")
    publish_tables(db)
    return {"deleted": True}


@router.post("/{number}/activities", status_code=201)
def add_activity(number: int, payload: ActivityCreate, db: Database = Depends(get_db)):
    """Append a housekeeping record and move the table status along with it.

    Only one cleaning may be pending or in progress. Posting a completed
    cleaning closes the open one and frees the table.
    """
    table = _find(db, number)
    stamp = now()
    activities: List[dict] = list(table.get("activities") or [])
    open_cleaning = [
        a for a in activities if a.get("type") == "cleaning" and a.get("status") in ACTIVE_ACTIVITY
    ]

    activity = TableActivity(
        **payload.model_dump(exclude={"start_time"}),
        start_time=payload.start_time or stamp,
    ).model_dump(by_alias=True)
    to_set = {"updatedAt": stamp}

    if payload.type == "cleaning" and payload.status in ACTIVE_ACTIVITY and open_cleaning:
        raise Conflict("Cleaning already in progress for this table")

    if payload.status == "completed":
        activity["completedTime"] = stamp
        if payload.type == "cleaning":
            for a in open_cleaning:
                a["status"] = "completed"
                a["completedTime"] = stamp
            to_set["lastCleaned"] = stamp
        if table.get("status") == ACTIVITY_STATUS.get(payload.type):
            to_set["status"] = "available"
    elif payload.status == "in-progress" and payload.type in ACTIVITY_STATUS:
        to_set["status"] = ACTIVITY_STATUS[payload.type]

    activities.append(activity)
    to_set["activities"] = activities
    db["table"].update_one({"_id": table["_id"]}, {"$set": to_set})
    publish_tables(db)
    return serialize_doc(db["table"].find_one({"_id": table["_id"]}))
