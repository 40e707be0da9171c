import pytest

import routes_admin
from config import Settings
from errors import Unauthorized, ValidationFailed
from mailer import build_otp_message, send_otp_email
from routes_admin import OtpStore, hash_password, verify_password


@pytest.fixture
def admin(db):
    db["admin"].insert_one(
        {"adminId": "owner", "email": "owner@example.com", "password": hash_password("s3cret")}
    )
    return "owner"


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(settings, to, otp):
        sent.append((to, otp))
        return True

    monkeypatch.setattr(routes_admin, "send_otp_email", fake_send)
    return sent


def test_password_hashing():
    hashed = hash_password("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret", "plain-text")


def test_login_then_verify(client, admin, outbox):
    resp = client.post("/api/admin/login", json={"adminId": "owner", "password": "s3cret"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "OTP sent"}
    to, otp = outbox[0]
    assert to == "owner@example.com"
    assert len(otp) == 6

    wrong = "000000" if otp != "000000" else "111111"
    assert client.post("/api/admin/verify-otp", json={"adminId": "owner", "otp": wrong}).status_code == 401
    ok = client.post("/api/admin/verify-otp", json={"adminId": "owner", "otp": otp})
    assert ok.json() == {"message": "OTP verified"}

    reused = client.post("/api/admin/verify-otp", json={"adminId": "owner", "otp": otp})
    assert reused.status_code == 400
    assert reused.json()["error"] == "No OTP requested"


def test_bad_credentials(client, admin, outbox):
    assert client.post("/api/admin/login", json={"adminId": "owner", "password": "nope"}).status_code == 401
    assert client.post("/api/admin/login", json={"adminId": "ghost", "password": "s3cret"}).status_code == 401
    assert client.post("/api/admin/login", json={"adminId": "owner"}).status_code == 400
    assert outbox == []


def test_otp_expiry():
    ticks = [1000.0]
    store = OtpStore(clock=lambda: ticks[0])
    otp = store.issue("owner", ttl_seconds=300)
    ticks[0] += 301
    with pytest.raises(ValidationFailed, match="OTP expired"):
        store.verify("owner", otp)
    with pytest.raises(ValidationFailed, match="No OTP requested"):
        store.verify("owner", otp)


def test_new_code_replaces_old():
    store = OtpStore()
    first = store.issue("owner", ttl_seconds=60)
    second = store.issue("owner", ttl_seconds=60)
    if first != second:
        with pytest.raises(Unauthorized):
            store.verify("owner", first)
    store.verify("owner", second)


def test_otp_email_content():
    settings = Settings(smtp_user="pos@example.com", otp_ttl_seconds=300)
    msg = build_otp_message(settings, "owner@example.com", "123456")
    assert msg["To"] == "owner@example.com"
    assert msg["From"] == "pos@example.com"
    assert "123456" in msg.get_body(("plain",)).get_content()
    assert "5 minutes" in msg.get_body(("html",)).get_content()


def test_email_skipped_without_smtp_host():
    assert send_otp_email(Settings(smtp_host=None), "owner@example.com", "123456") is False
