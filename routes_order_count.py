from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import get_db

router = APIRouter(prefix="/api/order-count", tags=["orders"])


@router.get("")
def total_count(db: Database = Depends(get_db)):
    return {"totalOrderCount": db["order"].count_documents({})}


@router.get("/take-away")
def takeaway_count(db: Database = Depends(get_db)):
    return {"count": db["order"].count_documents({"orderType": "take-away"})}


@router.get("/delivery")
def delivery_count(db: Database = Depends(get_db)):
    return {"count": db["order"].count_documents({"orderType": "delivery"})}
