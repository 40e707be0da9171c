"""Application settings loaded from the environment.

Values come from environment variables (or a local ``.env`` file) and are
read once per process through :func:`get_settings`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the restaurant API."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field(
        "mongodb://localhost:27017",
        validation_alias=AliasChoices("MONGO_URI", "DATABASE_URL"),
    )
    database_name: str = "restaurant_pos"
    port: int = 8000
    allowed_origins: str = "*"
    log_level: str = "INFO"

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_from: Optional[str] = None
    otp_email_subject: str = "Your Admin OTP"
    otp_ttl_seconds: int = 300

    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None

    payment_request_ttl_minutes: int = 60
    dine_in_reservation_window_minutes: int = 60

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
