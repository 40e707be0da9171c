"""
Database Schemas for the Restaurant POS

Each Pydantic model represents a collection in MongoDB. The collection name
is the lowercase of the class name (e.g., MenuItem -> "menuitem").
Field names are snake_case in Python and camelCase on the wire and in the
stored documents.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

OrderStatus = Literal["pending", "preparing", "ready", "served", "cancelled"]
PaymentStatus = Literal["paid", "unpaid"]
OrderType = Literal["dine-in", "take-away", "delivery"]
Priority = Literal["low", "medium", "high"]
TableStatus = Literal["available", "occupied", "cleaning", "reserved", "maintenance", "setup"]
ActivityType = Literal["cleaning", "maintenance", "setup", "inspection"]
ActivityStatus = Literal["pending", "in-progress", "completed"]
ReservationStatus = Literal["pending", "confirmed", "seated", "completed", "cancelled", "no-show"]
PaymentType = Literal["cash", "card", "upi", "qr"]
PaymentOf = Literal["order", "reservation", "session"]
DeliveryStatus = Literal["pending", "assigned", "out-for-delivery", "delivered", "cancelled"]
DeliverySlot = Literal["ASAP", "30min", "60min", "schedule"]

ACTIVE_RESERVATION_STATUSES = ("pending", "confirmed", "seated")
LIVE_ORDER_EXCLUDED = ("served", "cancelled")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MenuItem(CamelModel):
    """
    Dishes and drinks on the menu
    Collection name: "menuitem"
    """
    id: int = Field(..., description="Public numeric id")
    name: str = Field(..., min_length=1, description="Dish name")
    description: Optional[str] = Field(None, description="Short description")
    price: float = Field(..., ge=0, description="Current price, source of truth for totals")
    image: str = ""
    category: str = "dessert"
    prep_time: Optional[str] = None
    rating: float = 3.5
    is_veg: bool = False
    is_popular: bool = False
    is_available: bool = Field(True, description="Whether item can be ordered")
    spice_level: Optional[int] = Field(None, ge=0, le=3)
    allergens: List[str] = Field(default_factory=list)
    calories: Optional[int] = None


class OrderLine(CamelModel):
    """Line inside an order. Prices are resolved from the menu at read time."""
    item_id: int
    quantity: int = Field(..., ge=1)


class Order(CamelModel):
    """
    Customer order of any type
    Collection name: "order"
    """
    table_number: Optional[int] = None
    items: List[OrderLine]
    subtotal: float = Field(0, ge=0)
    tax: float = 0
    discount: float = 0
    extra_charges: float = 0
    total: float = Field(..., ge=0)
    status: OrderStatus = "pending"
    timestamp: datetime
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    estimated_time: int = 45
    priority: Priority = "medium"
    special_requests: Optional[str] = None
    payment_status: PaymentStatus = "unpaid"
    payment_method: str = "pending"
    order_type: OrderType
    session_id: Optional[str] = None
    idempotency_key: Optional[str] = None


class TableActivity(CamelModel):
    type: ActivityType
    status: ActivityStatus
    assigned_to: Optional[str] = None
    start_time: Optional[datetime] = None
    completed_time: Optional[datetime] = None
    notes: Optional[str] = None
    estimated_duration: Optional[int] = Field(None, ge=0, description="Minutes")


class Table(CamelModel):
    """
    Physical table on the floor
    Collection name: "table"
    """
    number: int
    capacity: int = Field(4, ge=1)
    status: TableStatus = "available"
    section: Optional[str] = None
    customer_name: Optional[str] = None
    guest_count: Optional[int] = None
    session_time: Optional[str] = None
    session_id: Optional[str] = None
    order_ids: List[str] = Field(default_factory=list)
    session_history: List[str] = Field(default_factory=list)
    order_count: int = 0
    amount: float = 0
    reservation_price: float = 0
    activities: List[TableActivity] = Field(default_factory=list)
    last_cleaned: Optional[datetime] = None
    next_maintenance: Optional[datetime] = None


class SessionPayment(CamelModel):
    total: float = 0
    method: Literal["cash", "card", "upi", "pending", "other"] = "pending"
    status: Literal["paid", "unpaid", "pending"] = "unpaid"
    currency: str = "INR"


class Session(CamelModel):
    """
    One dine-in seating at a table
    Collection name: "session"
    """
    session_id: str
    table_number: int
    orders: List[str] = Field(default_factory=list)
    customer_name: Optional[str] = None
    mobile: Optional[str] = None
    payment: SessionPayment = Field(default_factory=SessionPayment)
    active: bool = True


class ReservationPayment(CamelModel):
    subtotal: float = 0
    tax: float = 0
    discount: float = 0
    extra_charge: float = 0
    total: float = 0
    currency: str = "INR"
    payment_status: Literal["pending", "paid", "failed", "refunded"] = "pending"


class Reservation(CamelModel):
    """
    Advance table booking
    Collection name: "reservation"
    """
    id: str = Field(..., description="Public id like RES1")
    customer_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:mm")
    start_at: datetime
    guests: int = Field(..., ge=1)
    table_numbers: List[int] = Field(default_factory=list)
    table_number: Optional[int] = None
    status: ReservationStatus = "pending"
    special_requests: Optional[str] = None
    occasion: Optional[str] = None
    payment: Optional[ReservationPayment] = None
    session_minutes: int = Field(60, ge=1)
    notes: Optional[str] = None
    session_id: Optional[str] = None


class Payment(CamelModel):
    """
    Settled amount, immutable apart from its type
    Collection name: "payment"
    """
    amount: float = Field(..., gt=0)
    type: PaymentType = "cash"
    payment_of: PaymentOf
    order_id: Optional[str] = None
    reservation_id: Optional[str] = None
    session_id: Optional[str] = None


class PaymentRequest(CamelModel):
    """
    Table-side "bring the bill" marker
    Collection name: "paymentrequest"
    """
    table_number: int
    session_id: str
    timestamp: datetime


class DeliveryAddress(CamelModel):
    address1: str = Field(..., min_length=1)
    address2: str = ""
    landmark: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    full_address: Optional[str] = None


class Delivery(CamelModel):
    """
    Shipping details for a delivery order
    Collection name: "delivery"
    """
    order_id: str
    address: DeliveryAddress
    eta: Optional[int] = None
    slot: DeliverySlot = "ASAP"
    scheduled_time: Optional[datetime] = None
    contactless: bool = False
    instructions: str = ""
    status: DeliveryStatus = "pending"


class Admin(CamelModel):
    """
    Dashboard administrator
    Collection name: "admin"
    """
    admin_id: str
    email: str
    mobile_number: Optional[str] = None
    password: str = Field(..., description="argon2 hash")


class Review(CamelModel):
    """
    Customer review
    Collection name: "review"
    """
    name: str = Field(..., min_length=1)
    rating: float = Field(..., ge=0, le=5)
    comment: str = Field(..., min_length=1)


class DayHours(CamelModel):
    open: str = "11:00"
    close: str = "23:00"
    closed: bool = False


class OpeningHours(CamelModel):
    monday: DayHours = Field(default_factory=DayHours)
    tuesday: DayHours = Field(default_factory=DayHours)
    wednesday: DayHours = Field(default_factory=DayHours)
    thursday: DayHours = Field(default_factory=DayHours)
    friday: DayHours = Field(default_factory=DayHours)
    saturday: DayHours = Field(default_factory=DayHours)
    sunday: DayHours = Field(default_factory=DayHours)


class Restaurant(CamelModel):
    """
    Single restaurant profile document shown on the public site
    Collection name: "restaurant"
    """
    name: str = "Spice Garden Restaurant"
    description: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    location_link: str = ""
    opening_hours: OpeningHours = Field(default_factory=OpeningHours)
    cuisine: List[str] = Field(default_factory=list)
    price_range: Literal["$", "$$", "$$$", "$$$$"] = "$$"
    rating: float = Field(0, ge=0, le=5)
    total_reviews: int = 0
    images: List[str] = Field(default_factory=list)
    logo: str = ""
    interior_image: str = ""
    is_open: bool = True
    features: List[str] = Field(default_factory=list)
