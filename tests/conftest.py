"""Shared fixtures: an in-memory Mongo, the app client and a fake gateway."""

import os

import mongomock
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "pos_test")

from database import ensure_indexes, get_db  # noqa: E402
from gateway import get_gateway, sign  # noqa: E402
from main import app  # noqa: E402
from routes_admin import otp_store  # noqa: E402

TEST_SECRET = "test_secret"


class FakeGateway:
    """Records gateway calls instead of reaching Razorpay."""

    key_id = "rzp_test"
    key_secret = TEST_SECRET

    def __init__(self) -> None:
        self.orders = []
        self.payments = {}

    def create_order(self, amount_paise, receipt, notes, currency="INR"):
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": amount_paise,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        self.orders.append(order)
        return order

    def fetch_payment(self, payment_id):
        return self.payments[payment_id]

    def verify_signature(self, order_id, payment_id, signature):
        return sign(TEST_SECRET, order_id, payment_id) == signature


@pytest.fixture
def db():
    database = mongomock.MongoClient()["pos_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_gateway] = lambda: gateway
    otp_store.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def menu(db):
    db["menuitem"].insert_many(
        [
            {"id": 1, "name": "Paneer Tikka", "price": 100, "category": "starter", "isAvailable": True},
            {"id": 2, "name": "Masala Chai", "price": 30, "category": "drinks", "isAvailable": True},
            {"id": 3, "name": "Gulab Jamun", "price": 60, "category": "dessert", "isAvailable": False},
        ]
    )
    return db


@pytest.fixture
def tables(client):
    for number, price in ((1, 200), (2, 300), (3, 0)):
        resp = client.post("/api/tables", json={"number": number, "capacity": 4, "reservationPrice": price})
        assert resp.status_code == 201
    return [1, 2, 3]
