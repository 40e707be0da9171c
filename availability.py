"""Reservation time windows, conflict detection and table availability."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from pymongo.database import Database

from database import now
from errors import Conflict, ValidationFailed
from schemas import ACTIVE_RESERVATION_STATUSES, LIVE_ORDER_EXCLUDED

DEFAULT_SESSION_MINUTES = 60
DINE_IN_MINUTES = 60


def parse_slot(date: str, time: str) -> datetime:
    """Validate ``YYYY-MM-DD`` and ``HH:mm`` strings into one timestamp."""
    try:
        return datetime.strptime(f"{date} {time}", "%Y-%m-%d %H:%M")
    except (TypeError, ValueError):
        raise ValidationFailed("date must be YYYY-MM-DD and time must be HH:mm")


def parse_at(at: Optional[str] = None, date: Optional[str] = None, time: Optional[str] = None) -> datetime:
    if at:
        try:
            parsed = datetime.fromisoformat(at.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationFailed("at must be an ISO datetime")
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        return parsed
    if date and time:
        return parse_slot(date, time)
    if date or time:
        raise ValidationFailed("date and time must be given together")
    return now()


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def reservation_start(doc: Dict[str, Any]) -> Optional[datetime]:
    start = doc.get("startAt")
    if isinstance(start, datetime):
        return start.replace(tzinfo=None)
    if doc.get("date") and doc.get("time"):
        try:
            return parse_slot(doc["date"], doc["time"])
        except ValidationFailed:
            return None
    return None


def reservation_window(doc: Dict[str, Any]) -> Optional[tuple]:
    start = reservation_start(doc)
    if start is None:
        return None
    minutes = int(doc.get("sessionMinutes") or DEFAULT_SESSION_MINUTES)
    return start, start + timedelta(minutes=minutes)


def reservation_tables(doc: Dict[str, Any]) -> Set[int]:
    tables = {int(n) for n in doc.get("tableNumbers") or []}
    if doc.get("tableNumber") is not None:
        tables.add(int(doc["tableNumber"]))
    return tables


def _table_filter(tables: Iterable[int]) -> Dict[str, Any]:
    numbers = sorted({int(n) for n in tables})
    return {"$or": [{"tableNumber": {"$in": numbers}}, {"tableNumbers": {"$in": numbers}}]}


def active_reservations(db: Database, tables: Iterable[int], exclude_id: Any = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {
        **_table_filter(tables),
        "status": {"$in": list(ACTIVE_RESERVATION_STATUSES)},
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return list(db["reservation"].find(query))


def find_reservation_conflict(
    db: Database,
    tables: Iterable[int],
    start: datetime,
    minutes: int,
    exclude_id: Any = None,
) -> Optional[Dict[str, Any]]:
    """Return the first active reservation on ``tables`` overlapping the window."""
    tables = set(tables)
    end = start + timedelta(minutes=minutes)
    for doc in active_reservations(db, tables, exclude_id):
        window = reservation_window(doc)
        if window and overlaps(window[0], window[1], start, end):
            return doc
    return None


def find_dine_in_conflict(
    db: Database, tables: Iterable[int], start: datetime, minutes: int
) -> Optional[Dict[str, Any]]:
    """Return a live dine-in order on ``tables`` whose seating overlaps the window."""
    end = start + timedelta(minutes=minutes)
    live = db["order"].find(
        {
            "orderType": "dine-in",
            "tableNumber": {"$in": sorted({int(n) for n in tables})},
            "status": {"$nin": list(LIVE_ORDER_EXCLUDED)},
        }
    )
    for order in live:
        placed = order.get("timestamp")
        if not isinstance(placed, datetime):
            continue
        placed = placed.replace(tzinfo=None)
        if overlaps(placed, placed + timedelta(minutes=DINE_IN_MINUTES), start, end):
            return order
    return None


def assert_reservable(
    db: Database, tables: Iterable[int], start: datetime, minutes: int, exclude_id: Any = None
) -> None:
    tables = set(tables)
    if not tables:
        return
    if find_reservation_conflict(db, tables, start, minutes, exclude_id):
        raise Conflict("Table already reserved at this time")
    if find_dine_in_conflict(db, tables, start, minutes):
        raise Conflict("Table is occupied by a dine-in guest at this time")


def upcoming_reservation(
    db: Database, table_number: int, at: datetime, window_minutes: int = DINE_IN_MINUTES
) -> Optional[Dict[str, Any]]:
    """Return a pending/confirmed reservation starting within ``[at, at + window]``."""
    horizon = at + timedelta(minutes=window_minutes)
    query = {**_table_filter([table_number]), "status": {"$in": ["pending", "confirmed"]}}
    for doc in db["reservation"].find(query):
        start = reservation_start(doc)
        if start is not None and at <= start <= horizon:
            return doc
    return None


def available_tables(db: Database, at: datetime, duration: int) -> List[Dict[str, Any]]:
    """Tables free for ``[at, at + duration]``.

    Short walk-in windows (under an hour) only consider tables that are
    ``available`` right now; longer bookings consider every table and rely
    on the reservation check alone.
    """
    query: Dict[str, Any] = {"status": "available"} if duration < 60 else {}
    result = []
    for table in db["table"].find(query).sort("number", 1):
        if find_reservation_conflict(db, [table["number"]], at, duration):
            continue
        result.append(
            {
                "number": table["number"],
                "capacity": table.get("capacity"),
                "reservationPrice": table.get("reservationPrice", 0),
            }
        )
    return result
