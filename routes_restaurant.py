"""Restaurant profile shown on the public site and edited from settings."""

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import Field
from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_db, now, serialize_doc
from errors import ValidationFailed
from schemas import CamelModel, OpeningHours, Restaurant

router = APIRouter(prefix="/api/restaurant", tags=["restaurant"])

DEFAULT_RESTAURANT = Restaurant(
    description=(
        "Experience authentic Indian flavors in a warm, welcoming atmosphere. Our chefs use "
        "traditional recipes passed down through generations, combined with the finest "
        "ingredients to create memorable dining experiences."
    ),
    address="123 Food Street, Sector 18, Noida, UP 201301",
    phone="+91 98765 43210",
    email="info@spicegarden.com",
    website="www.spicegarden.com",
    cuisine=["Indian", "North Indian", "Biryani", "Vegetarian"],
    rating=4.5,
    total_reviews=1250,
    features=["Dine-in", "Takeaway", "Home Delivery", "Voice Ordering", "Online Payment"],
)


class RestaurantUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    location_link: Optional[str] = None
    opening_hours: Optional[OpeningHours] = None
    cuisine: Optional[List[str]] = None
    price_range: Optional[Literal["$", "$$", "$$$", "$$$$"]] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    total_reviews: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    logo: Optional[str] = None
    interior_image: Optional[str] = None
    is_open: Optional[bool] = None
    features: Optional[List[str]] = None


@router.get("/info")
def get_restaurant_info(db: Database = Depends(get_db)):
    """Return the profile, seeding the default one on first use."""
    doc = db["restaurant"].find_one({})
    if doc is None:
        create_document(db, "restaurant", DEFAULT_RESTAURANT)
        doc = db["restaurant"].find_one({})
    return serialize_doc(doc)


@router.put("/info")
def update_restaurant_info(patch: RestaurantUpdate, db: Database = Depends(get_db)):
    to_set = patch.model_dump(exclude_unset=True, by_alias=True)
    if not to_set:
        raise ValidationFailed("No updatable fields provided")
    existing = db["restaurant"].find_one({})
    if existing is None:
        base = Restaurant(**patch.model_dump(exclude_unset=True))
        create_document(db, "restaurant", base)
        doc = db["restaurant"].find_one({})
    else:
        to_set["updatedAt"] = now()
        doc = db["restaurant"].find_one_and_update(
            {"_id": existing["_id"]}, {"$set": to_set}, return_document=ReturnDocument.AFTER
        )
    return {"message": "Restaurant information updated successfully", "restaurant": serialize_doc(doc)}
