"""Razorpay REST client and payment signature verification."""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from config import get_settings
from errors import GatewayError

logger = logging.getLogger(__name__)

RAZORPAY_API = "https://api.razorpay.com/v1"

METHOD_MAP = {
    "card": "card",
    "netbanking": "netbanking",
    "upi": "upi",
    "wallet": "upi",
}


def sign(secret: str, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def map_method(method: Optional[str]) -> str:
    return METHOD_MAP.get((method or "").lower(), "upi")


class RazorpayClient:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = RAZORPAY_API,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self._http = httpx.Client(base_url=base_url, auth=(key_id, key_secret), timeout=timeout, transport=transport)

    def _call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = self._http.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("razorpay %s %s returned %s", method, path, exc.response.status_code)
            raise GatewayError("Payment gateway rejected the request")
        except httpx.HTTPError:
            logger.exception("razorpay %s %s failed", method, path)
            raise GatewayError("Payment gateway unavailable")
        return resp.json()

    def create_order(self, amount_paise: int, receipt: str, notes: Dict[str, Any], currency: str = "INR") -> Dict[str, Any]:
        payload = {"amount": int(amount_paise), "currency": currency, "receipt": receipt, "notes": notes}
        return self._call("POST", "/orders", json=payload)

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return self._call("GET", f"/payments/{payment_id}")

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        expected = sign(self.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, signature or "")


_client: Optional[RazorpayClient] = None


def get_gateway() -> RazorpayClient:
    """FastAPI dependency returning the configured gateway client."""
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.razorpay_key_id or not settings.razorpay_key_secret:
            raise GatewayError("Payment gateway is not configured")
        _client = RazorpayClient(settings.razorpay_key_id, settings.razorpay_key_secret)
    return _client
