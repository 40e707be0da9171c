def _delivery(**extra):
    body = {
        "items": [{"itemId": 1, "quantity": 1}],
        "address": {"address1": "12 MG Road", "city": "Noida"},
        "total": 100,
        "customerName": "Dev",
        "customerPhone": "9999900000",
        "contactless": True,
    }
    body.update(extra)
    return body


def test_create_prices_and_links_order(client, menu):
    resp = client.post("/api/deliveries", json=_delivery())
    assert resp.status_code == 201
    body = resp.json()
    assert body["total"] == 100

    order = client.get(f"/api/orders/{body['orderId']}").json()
    assert order["orderType"] == "delivery"
    assert order["tableNumber"] == 1

    listing = client.get("/api/deliveries").json()
    assert listing[0]["_id"] == body["deliveryId"]
    assert listing[0]["address"]["fullAddress"] == "12 MG Road, Noida"
    assert listing[0]["status"] == "pending"
    assert listing[0]["order"]["items"][0]["name"] == "Paneer Tikka"


def test_create_rejects_bad_totals_and_addresses(client, menu):
    resp = client.post("/api/deliveries", json=_delivery(total=90))
    assert resp.status_code == 400
    assert resp.json()["calculatedTotal"] == 100
    assert client.post("/api/deliveries", json=_delivery(address={"city": "Noida"})).status_code == 400
    assert menu["order"].count_documents({}) == 0


def test_dispatch_waits_for_kitchen(client, menu):
    created = client.post("/api/deliveries", json=_delivery()).json()
    delivery_id = created["deliveryId"]

    early = client.patch(f"/api/deliveries/{delivery_id}", json={"status": "out-for-delivery"})
    assert early.status_code == 409

    assert client.patch(f"/api/deliveries/{delivery_id}", json={"status": "assigned"}).status_code == 200
    client.patch(f"/api/orders/{created['orderId']}", json={"status": "served"})

    out = client.patch(f"/api/deliveries/{delivery_id}", json={"status": "out-for-delivery", "eta": 20})
    assert out.status_code == 200
    assert out.json()["eta"] == 20

    done = client.patch(f"/api/deliveries/{delivery_id}", json={"status": "delivered"})
    assert done.json()["status"] == "delivered"
    assert client.get(f"/api/orders/{created['orderId']}").json()["status"] == "served"


def test_cancel_propagates_to_order(client, menu):
    created = client.post("/api/deliveries", json=_delivery()).json()
    resp = client.patch(f"/api/deliveries/{created['deliveryId']}", json={"status": "cancelled"})
    assert resp.status_code == 200
    assert client.get(f"/api/orders/{created['orderId']}").json()["status"] == "cancelled"


def test_update_errors(client, menu):
    created = client.post("/api/deliveries", json=_delivery()).json()
    delivery_id = created["deliveryId"]
    assert client.patch(f"/api/deliveries/{delivery_id}", json={"status": "pending"}).status_code == 400
    assert client.patch(f"/api/deliveries/{delivery_id}", json={}).status_code == 400
    assert client.patch("/api/deliveries/507f1f77bcf86cd799439011", json={"eta": 5}).status_code == 404

    menu["order"].delete_many({})
    orphan = client.patch(f"/api/deliveries/{delivery_id}", json={"status": "assigned"})
    assert orphan.status_code == 400
    assert orphan.json()["error"] == "Linked order not found"
