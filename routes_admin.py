"""Admin sign-in: password check followed by an emailed one-time code."""

import logging
import secrets
import threading
import time
from typing import Dict, Optional, Tuple

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import Field
from pymongo.database import Database

from config import Settings, get_settings
from database import get_db
from errors import Unauthorized, ValidationFailed
from mailer import send_otp_email
from schemas import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

ph = PasswordHasher()


class LoginRequest(CamelModel):
    admin_id: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class OtpRequest(CamelModel):
    admin_id: str = Field(..., min_length=1)
    otp: str = Field(..., min_length=1)


def hash_password(plain_password: str) -> str:
    return ph.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plaintext password against a stored hash."""
    try:
        return ph.verify(hashed_password, plain_password)
    except VerifyMismatchError:
        return False
    except InvalidHashError:
        logger.error("stored admin password is not an argon2 hash")
        return False
    except VerificationError as exc:
        logger.error("argon2 verification error: %s", exc)
        raise


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


class OtpStore:
    """Pending one-time codes per admin, held in process memory."""

    def __init__(self, clock=time.monotonic) -> None:
        self._codes: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def issue(self, admin_id: str, ttl_seconds: int) -> str:
        otp = generate_otp()
        with self._lock:
            self._codes[admin_id] = (otp, self._clock() + ttl_seconds)
        return otp

    def verify(self, admin_id: str, otp: str) -> None:
        """Consume the code for ``admin_id`` or raise."""
        with self._lock:
            record: Optional[Tuple[str, float]] = self._codes.get(admin_id)
            if record is None:
                raise ValidationFailed("No OTP requested")
            code, expires_at = record
            if self._clock() > expires_at:
                del self._codes[admin_id]
                raise ValidationFailed("OTP expired")
            if not secrets.compare_digest(code, otp):
                raise Unauthorized("Invalid OTP")
            del self._codes[admin_id]

    def clear(self) -> None:
        with self._lock:
            self._codes.clear()


otp_store = OtpStore()


@router.post("/login")
def login(
    payload: LoginRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    admin = db["admin"].find_one({"adminId": payload.admin_id})
    if not admin or not verify_password(payload.password, admin.get("password", "")):
        raise Unauthorized("Invalid credentials")

    otp = otp_store.issue(payload.admin_id, settings.otp_ttl_seconds)
    logger.info("admin %s authenticated, OTP issued", payload.admin_id)
    if admin.get("email"):
        background_tasks.add_task(send_otp_email, settings, admin["email"], otp)
    else:
        logger.warning("admin %s has no email address, OTP not sent", payload.admin_id)
    return {"message": "OTP sent"}


@router.post("/verify-otp")
def verify_otp(payload: OtpRequest):
    otp_store.verify(payload.admin_id, payload.otp)
    logger.info("admin %s verified OTP", payload.admin_id)
    return {"message": "OTP verified"}
