from datetime import timedelta

from database import now

TOMORROW = (now() + timedelta(days=1)).strftime("%Y-%m-%d")


def _reservation(time="19:00", tables=(2,), **extra):
    body = {
        "customerName": "Meera",
        "phone": "9811111111",
        "date": TOMORROW,
        "time": time,
        "guests": 4,
        "tableNumbers": list(tables),
        "sessionMinutes": 60,
    }
    body.update(extra)
    return body


def test_create_assigns_sequential_ids_and_holds_table(client, tables):
    first = client.post("/api/reservations", json=_reservation())
    second = client.post("/api/reservations", json=_reservation(time="21:00"))
    assert first.status_code == 201
    assert first.json()["id"] == "RES1"
    assert second.json()["id"] == "RES2"
    assert first.json()["startAt"].startswith(f"{TOMORROW}T19:00")

    table = client.get("/api/tables/2").json()
    assert table["status"] == "reserved"
    assert table["customerName"] == "Meera"


def test_overlap_rules(client, tables):
    assert client.post("/api/reservations", json=_reservation()).status_code == 201
    clash = client.post("/api/reservations", json=_reservation(time="19:30", tables=(2, 3)))
    assert clash.status_code == 409
    assert clash.json()["error"] == "Table already reserved at this time"
    assert client.post("/api/reservations", json=_reservation(time="18:30")).status_code == 409
    assert client.post("/api/reservations", json=_reservation(time="20:00")).status_code == 201
    assert client.post("/api/reservations", json=_reservation(tables=(1,))).status_code == 201


def test_cancelled_reservation_frees_the_slot(client, tables):
    created = client.post("/api/reservations", json=_reservation()).json()
    client.patch(f"/api/reservations/{created['id']}", json={"status": "cancelled"})
    assert client.get("/api/tables/2").json()["status"] == "available"
    assert client.post("/api/reservations", json=_reservation(time="19:15")).status_code == 201


def test_invalid_date_or_time_is_rejected(client, tables):
    assert client.post("/api/reservations", json=_reservation(time="7pm")).status_code == 400
    assert client.post("/api/reservations", json=_reservation(date="2024-13-40")).status_code == 400
    assert client.post("/api/reservations", json=_reservation(guests=0)).status_code == 400


def test_reschedule_checks_conflicts(client, tables):
    client.post("/api/reservations", json=_reservation())
    other = client.post("/api/reservations", json=_reservation(time="21:00")).json()

    clash = client.patch(f"/api/reservations/{other['id']}", json={"date": TOMORROW, "time": "19:30"})
    assert clash.status_code == 409

    moved = client.patch(f"/api/reservations/{other['id']}", json={"date": TOMORROW, "time": "22:00"})
    assert moved.status_code == 200
    assert moved.json()["time"] == "22:00"
    assert moved.json()["startAt"].startswith(f"{TOMORROW}T22:00")

    assert client.patch(f"/api/reservations/{other['id']}", json={"time": "23:00"}).status_code == 400


def test_seating_and_deleting_update_the_table(client, tables):
    created = client.post("/api/reservations", json=_reservation()).json()
    by_mongo_id = client.get(f"/api/reservations/{created['_id']}").json()
    assert by_mongo_id["id"] == created["id"]

    seated = client.patch(f"/api/reservations/{created['id']}", json={"status": "seated"})
    assert seated.status_code == 200
    assert client.get("/api/tables/2").json()["status"] == "occupied"

    assert client.delete(f"/api/reservations/{created['id']}").json() == {"deleted": True}
    assert client.get("/api/tables/2").json()["status"] == "available"
    assert client.get(f"/api/reservations/{created['id']}").status_code == 404


def test_listing_is_ordered_by_start(client, tables):
    client.post("/api/reservations", json=_reservation(time="21:00"))
    client.post("/api/reservations", json=_reservation(time="12:00", tables=(1,)))
    times = [r["time"] for r in client.get("/api/reservations").json()]
    assert times == ["12:00", "21:00"]


def test_reactivating_a_cancelled_booking_checks_conflicts(client, tables):
    first = client.post("/api/reservations", json=_reservation()).json()
    client.patch(f"/api/reservations/{first['id']}", json={"status": "cancelled"})
    assert client.post("/api/reservations", json=_reservation(time="19:15")).status_code == 201

    resp = client.patch(f"/api/reservations/{first['id']}", json={"status": "confirmed"})
    assert resp.status_code == 409
    assert client.get(f"/api/reservations/{first['id']}").json()["status"] == "cancelled"
