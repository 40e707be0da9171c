"""Customer reviews shown on the restaurant page."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import create_document, get_db, now
from schemas import Review

router = APIRouter(prefix="/api/reviews", tags=["reviews"])

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sept", "Oct", "Nov", "Dec"]


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n > 1 else ''} ago"


def format_relative_date(when: datetime, reference: Optional[datetime] = None) -> str:
    """Human friendly age, falling back to ``10-Sept,25`` after a week."""
    seconds = int(((reference or now()) - when).total_seconds())
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if minutes < 1:
        return "a few seconds ago"
    if hours < 1:
        return _plural(minutes, "minute")
    if days < 1:
        return _plural(hours, "hour")
    if days < 7:
        return _plural(days, "day")
    return f"{when.day}-{MONTHS[when.month - 1]},{when.strftime('%y')}"


@router.get("")
def list_reviews(db: Database = Depends(get_db)):
    return [
        {
            "name": r.get("name"),
            "rating": r.get("rating"),
            "date": format_relative_date(r["createdAt"]),
            "comment": r.get("comment"),
        }
        for r in db["review"].find({}).sort("createdAt", -1)
    ]


@router.post("", status_code=201)
def add_review(review: Review, db: Database = Depends(get_db)):
    create_document(db, "review", review)
    return {"message": "Review added"}
