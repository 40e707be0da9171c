"""Menu item administration and listing."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_db, now, serialize_doc
from errors import Conflict, NotFound, ValidationFailed
from schemas import CamelModel, MenuItem

router = APIRouter(prefix="/api/menu/items", tags=["menu"])


class MenuItemUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    prep_time: Optional[str] = None
    rating: Optional[float] = None
    is_veg: Optional[bool] = None
    is_popular: Optional[bool] = None
    is_available: Optional[bool] = None
    spice_level: Optional[int] = Field(None, ge=0, le=3)
    allergens: Optional[List[str]] = None
    calories: Optional[int] = None


@router.get("")
def list_items(all_items: bool = Query(False, alias="all"), db: Database = Depends(get_db)):
    """List available items, or everything with ``?all=true``."""
    query = {} if all_items else {"isAvailable": {"$ne": False}}
    return [serialize_doc(d) for d in db["menuitem"].find(query).sort("id", 1)]


@router.get("/{item_id}")
def get_item(item_id: int, db: Database = Depends(get_db)):
    doc = db["menuitem"].find_one({"id": item_id})
    if not doc:
        raise NotFound("Item not found")
    return serialize_doc(doc)


@router.put("", status_code=201)
def add_item(item: MenuItem, db: Database = Depends(get_db)):
    if db["menuitem"].find_one({"id": item.id}):
        raise Conflict("Item with this id already exists")
    try:
        create_document(db, "menuitem", item)
    except DuplicateKeyError:
        raise Conflict("Item with this id already exists")
    return serialize_doc(db["menuitem"].find_one({"id": item.id}))


@router.patch("/{item_id}")
def update_item(item_id: int, patch: MenuItemUpdate, db: Database = Depends(get_db)):
    update_data = patch.model_dump(exclude_unset=True, by_alias=True)
    if not update_data:
        raise ValidationFailed("No updatable fields provided")
    update_data["updatedAt"] = now()
    result = db["menuitem"].update_one({"id": item_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise NotFound("Item not found")
    return serialize_doc(db["menuitem"].find_one({"id": item_id}))


@router.delete("/{item_id}")
def delete_item(item_id: int, db: Database = Depends(get_db)):
    result = db["menuitem"].delete_one({"id": item_id})
    if result.deleted_count == 0:
        raise NotFound("Item not found")
    return {"message": "Item deleted"}
