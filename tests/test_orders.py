from bson import ObjectId


def _takeaway(total, **extra):
    body = {
        "items": [{"itemId": 1, "quantity": 2}],
        "tax": 18,
        "discount": 0,
        "total": total,
        "orderType": "take-away",
    }
    body.update(extra)
    return body


def test_order_with_matching_total_is_accepted(client, menu):
    resp = client.post("/api/orders", json=_takeaway(218))
    assert resp.status_code == 201
    body = resp.json()
    assert body["total"] == 218
    assert body["message"] == "Order created"

    stored = menu["order"].find_one({"_id": ObjectId(body["orderId"])})
    assert stored["subtotal"] == 200
    assert stored["status"] == "pending"
    assert stored["paymentStatus"] == "unpaid"


def test_order_with_changed_total_is_rejected(client, menu):
    resp = client.post("/api/orders", json=_takeaway(200))
    assert resp.status_code == 400
    assert resp.json() == {"error": "total price is changed", "calculatedTotal": 218}
    assert menu["order"].count_documents({}) == 0


def test_unknown_and_unavailable_items(client, menu):
    unknown = client.post("/api/orders", json={**_takeaway(100), "items": [{"itemId": 77, "quantity": 1}]})
    assert unknown.status_code == 400
    unavailable = client.post("/api/orders", json={**_takeaway(60), "items": [{"itemId": 3, "quantity": 1}]})
    assert unavailable.status_code == 409


def test_request_validation_errors_are_400(client, menu):
    assert client.post("/api/orders", json={**_takeaway(218), "items": []}).status_code == 400
    resp = client.post("/api/orders", json={**_takeaway(218), "orderType": "dine-in"})
    assert resp.status_code == 400
    assert "tableNumber" in resp.json()["error"]
    assert client.post("/api/orders", json={**_takeaway(218), "status": "paid"}).status_code == 400


def test_takeaway_and_delivery_numbers_are_sequential_per_type(client, menu):
    numbers = [client.post("/api/orders", json=_takeaway(218)).json()["tableNumber"] for _ in range(3)]
    assert numbers == [1, 2, 3]
    delivery = client.post("/api/orders", json=_takeaway(218, orderType="delivery"))
    assert delivery.json()["tableNumber"] == 1


def test_listings_expand_items(client, menu):
    first = client.post("/api/orders", json=_takeaway(218)).json()["orderId"]
    second = client.post("/api/orders", json=_takeaway(218)).json()["orderId"]
    client.patch(f"/api/orders/{second}", json={"status": "served"})

    orders = client.get("/api/orders").json()
    assert {o["_id"] for o in orders} == {first, second}
    assert orders[0]["items"][0]["name"] == "Paneer Tikka"

    live = client.get("/api/orders/live").json()
    assert [o["_id"] for o in live] == [first]
    assert [o["_id"] for o in client.get("/api/orders/counter").json()] == [first]
    assert len(client.get("/api/orders/takeaway").json()) == 2

    one = client.get(f"/api/orders/{first}").json()
    assert one["items"] == [{"itemId": 1, "name": "Paneer Tikka", "quantity": 2, "price": 100}]


def test_get_order_errors(client, menu):
    assert client.get("/api/orders/not-an-id").json() == {"error": "Invalid id"}
    assert client.get(f"/api/orders/{ObjectId()}").status_code == 404


def test_patch_reprices_items(client, menu):
    order_id = client.post("/api/orders", json=_takeaway(218)).json()["orderId"]

    bad = client.patch(f"/api/orders/{order_id}", json={"items": [{"itemId": 2, "quantity": 1}], "total": 10})
    assert bad.status_code == 400
    assert bad.json()["calculatedTotal"] == 48

    resp = client.patch(f"/api/orders/{order_id}", json={"items": [{"itemId": 2, "quantity": 1}], "total": 48})
    assert resp.status_code == 200
    assert resp.json()["subtotal"] == 30
    assert resp.json()["total"] == 48


def test_patch_requires_fields(client, menu):
    order_id = client.post("/api/orders", json=_takeaway(218)).json()["orderId"]
    assert client.patch(f"/api/orders/{order_id}", json={}).status_code == 400
    assert client.patch(f"/api/orders/{ObjectId()}", json={"status": "ready"}).status_code == 404


def test_patching_money_fields_reprices_from_stored_items(client, menu):
    order_id = client.post("/api/orders", json=_takeaway(218)).json()["orderId"]

    forged = client.patch(f"/api/orders/{order_id}", json={"total": 1})
    assert forged.status_code == 400
    assert forged.json()["calculatedTotal"] == 218

    discounted = client.patch(f"/api/orders/{order_id}", json={"discount": 18})
    assert discounted.status_code == 200
    order = discounted.json()
    assert order["subtotal"] == 200
    assert order["discount"] == 18
    assert order["total"] == 200

    assert client.patch(f"/api/orders/{order_id}", json={"tax": 0, "total": 182}).json()["total"] == 182


def test_repriced_dine_in_order_updates_session_and_table(client, menu, tables):
    body = {"items": [{"itemId": 1, "quantity": 1}], "total": 100, "orderType": "dine-in", "tableNumber": 1}
    placed = client.post("/api/orders", json=body).json()

    resp = client.patch(f"/api/orders/{placed['orderId']}", json={"discount": 10, "total": 90})
    assert resp.status_code == 200
    session = menu["session"].find_one({"sessionId": placed["sessionId"]})
    assert session["payment"]["total"] == 90
    assert menu["table"].find_one({"number": 1})["amount"] == 90


def test_negative_totals_are_rejected(client, menu):
    resp = client.post("/api/orders", json={**_takeaway(-50), "items": [{"itemId": 1, "quantity": 1}], "tax": 0, "discount": 150})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Order total cannot be negative"
    assert client.post("/api/orders", json={**_takeaway(223), "discount": -5}).status_code == 400
    assert menu["order"].count_documents({}) == 0

    order_id = client.post("/api/orders", json=_takeaway(218)).json()["orderId"]
    assert client.patch(f"/api/orders/{order_id}", json={"discount": 500}).status_code == 400
    assert client.patch(f"/api/orders/{order_id}", json={"tax": -1}).status_code == 400
