import httpx
import pytest

import gateway as gateway_module
from config import Settings
from errors import GatewayError
from gateway import RazorpayClient, get_gateway, map_method, sign

from conftest import TEST_SECRET


def test_create_order_prices_cart_on_server(client, menu, gateway):
    resp = client.post(
        "/api/razorpay/create-order",
        json={"items": [{"itemId": 1, "quantity": 2}], "tip": 10, "promo": "save10"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["amounts"] == {
        "subtotal": 200,
        "tax": 36,
        "discount": 20,
        "extraCharges": 0,
        "deliveryFee": 49,
        "tip": 10,
        "total": 275,
        "totalInPaise": 27500,
    }
    assert body["order"]["id"] == "order_1"
    assert gateway.orders[0]["amount"] == 27500
    assert gateway.orders[0]["notes"]["orderType"] == "food_delivery"


def test_create_order_rejects_unavailable_items(client, menu, gateway):
    resp = client.post("/api/razorpay/create-order", json={"items": [{"itemId": 3, "quantity": 1}]})
    assert resp.status_code == 409
    assert gateway.orders == []


def test_reservation_deposit(client, tables, gateway):
    resp = client.post(
        "/api/razorpay/create-reservation-order",
        json={"tableNumbers": [2, 1], "reservationId": "RES1", "customerName": "Meera"},
    )
    assert resp.status_code == 200
    assert resp.json()["amounts"] == {"total": 500, "totalInPaise": 50000, "tables": [1, 2]}
    assert gateway.orders[0]["notes"]["reservationId"] == "RES1"

    free = client.post("/api/razorpay/create-reservation-order", json={"tableNumbers": [3]})
    assert free.status_code == 400
    missing = client.post("/api/razorpay/create-reservation-order", json={"tableNumbers": [1, 99]})
    assert missing.status_code == 404
    assert missing.json()["error"] == "Table not found: 99"


def test_verify_payment(client, gateway):
    gateway.payments["pay_1"] = {
        "id": "pay_1",
        "amount": 27500,
        "currency": "INR",
        "status": "captured",
        "method": "wallet",
        "order_id": "order_1",
        "captured": True,
    }
    good = client.post(
        "/api/razorpay/verify-payment",
        json={
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": sign(TEST_SECRET, "order_1", "pay_1"),
        },
    )
    assert good.status_code == 200
    assert good.json()["success"] is True
    assert good.json()["payment"]["method"] == "upi"

    bad = client.post(
        "/api/razorpay/verify-payment",
        json={"razorpay_order_id": "order_1", "razorpay_payment_id": "pay_1", "razorpay_signature": "forged"},
    )
    assert bad.status_code == 400
    assert bad.json() == {"error": "Invalid payment signature", "success": False}


@pytest.mark.parametrize(
    "method, expected",
    [("card", "card"), ("NetBanking", "netbanking"), ("wallet", "upi"), ("emi", "upi"), (None, "upi")],
)
def test_map_method(method, expected):
    assert map_method(method) == expected


def _client(handler):
    return RazorpayClient("rzp_test", TEST_SECRET, transport=httpx.MockTransport(handler))


def test_client_posts_orders_with_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"id": "order_9", "amount": 100})

    order = _client(handler).create_order(100, "r1", {"k": "v"})
    assert order["id"] == "order_9"
    assert seen["url"] == "https://api.razorpay.com/v1/orders"
    assert seen["auth"].startswith("Basic ")


def test_client_maps_failures_to_gateway_error():
    rejected = _client(lambda request: httpx.Response(500, json={"error": "boom"}))
    with pytest.raises(GatewayError):
        rejected.fetch_payment("pay_1")

    def unreachable(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(GatewayError):
        _client(unreachable).fetch_payment("pay_1")


def test_client_signature_check():
    client = _client(lambda request: httpx.Response(200, json={}))
    assert client.verify_signature("o", "p", sign(TEST_SECRET, "o", "p"))
    assert not client.verify_signature("o", "p", "nope")


def test_gateway_requires_keys(monkeypatch):
    monkeypatch.setattr(gateway_module, "_client", None)
    monkeypatch.setattr(gateway_module, "get_settings", lambda: Settings(razorpay_key_id=None, razorpay_key_secret=None))
    with pytest.raises(GatewayError):
        get_gateway()
