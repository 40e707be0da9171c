"""Server-side order pricing.

Every path that turns a cart into money (order creation and update, session
orders, deliveries and gateway orders) goes through :func:`price_items`, so
totals are computed and rounded the same way everywhere.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from pymongo.database import Database

from errors import Conflict, ValidationFailed

GATEWAY_TAX_RATE = 0.18
DELIVERY_FEE = 49
FREE_DELIVERY_ABOVE = 999


def _money(value: float) -> float:
    return round(float(value), 2)


@dataclass
class PriceBreakdown:
    subtotal: float
    tax: float = 0
    discount: float = 0
    extra_charges: float = 0
    delivery_fee: float = 0
    tip: float = 0

    @property
    def total(self) -> float:
        return _money(
            self.subtotal
            + self.tax
            - self.discount
            + self.extra_charges
            + self.delivery_fee
            + self.tip
        )

    def as_dict(self) -> Dict[str, float]:
        data = asdict(self)
        return {
            "subtotal": data["subtotal"],
            "tax": data["tax"],
            "discount": data["discount"],
            "extraCharges": data["extra_charges"],
            "deliveryFee": data["delivery_fee"],
            "tip": data["tip"],
            "total": self.total,
        }


def _line_value(line: Any, key: str, alias: str) -> Any:
    if isinstance(line, Mapping):
        return line.get(alias, line.get(key))
    return getattr(line, key)


def menu_by_id(db: Database, item_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
    ids = sorted({int(i) for i in item_ids if i is not None})
    return {m["id"]: m for m in db["menuitem"].find({"id": {"$in": ids}})}


def menu_subtotal(db: Database, items: Iterable[Any]) -> float:
    """Sum ``price * quantity`` over ``items`` using current menu prices.

    Items may be pydantic ``OrderLine`` objects or ``{"itemId", "quantity"}``
    mappings. Unknown ids are a validation error; items switched off on the
    menu are a conflict.
    """
    lines = [
        (int(_line_value(it, "item_id", "itemId")), int(_line_value(it, "quantity", "quantity")))
        for it in items
    ]
    menu = menu_by_id(db, (item_id for item_id, _ in lines))
    subtotal = 0.0
    for item_id, qty in lines:
        entry = menu.get(item_id)
        if entry is None:
            raise ValidationFailed(f"Menu item not found: {item_id}")
        if not entry.get("isAvailable", True):
            raise Conflict(f"Menu item unavailable: {entry.get('name', item_id)}", itemId=item_id)
        subtotal += float(entry["price"]) * qty
    return _money(subtotal)


def price_items(
    db: Database,
    items: Iterable[Any],
    *,
    tax: float = 0,
    discount: float = 0,
    extra_charges: float = 0,
    delivery_fee: float = 0,
    tip: float = 0,
) -> PriceBreakdown:
    breakdown = PriceBreakdown(
        subtotal=menu_subtotal(db, items),
        tax=_money(tax or 0),
        discount=_money(discount or 0),
        extra_charges=_money(extra_charges or 0),
        delivery_fee=_money(delivery_fee or 0),
        tip=_money(tip or 0),
    )
    if breakdown.total < 0:
        raise ValidationFailed("Order total cannot be negative", calculatedTotal=breakdown.total)
    return breakdown


def verify_total(breakdown: PriceBreakdown, declared: Optional[float]) -> None:
    """Reject a client total that does not match the server computation."""
    if declared is None:
        return
    if _money(declared) != breakdown.total:
        raise ValidationFailed("total price is changed", calculatedTotal=breakdown.total)


def gateway_charges(subtotal: float, promo: Optional[str] = None, tip: float = 0) -> Dict[str, float]:
    """Charges applied to online-paid delivery carts.

    Tax is 18% rounded to whole units, delivery is free above 999 and
    promo codes ``FLAT50`` and ``SAVE10`` (10%, capped at 100) are honoured.
    The discount never exceeds the subtotal.
    """
    discount = 0.0
    code = (promo or "").strip().upper()
    if code == "FLAT50":
        discount = 50
    elif code == "SAVE10":
        discount = min(100, round(subtotal * 0.1))
    discount = min(discount, subtotal)
    return {
        "tax": round(subtotal * GATEWAY_TAX_RATE),
        "discount": discount,
        "delivery_fee": 0 if subtotal > FREE_DELIVERY_ABOVE else DELIVERY_FEE,
        "tip": tip or 0,
    }


def expand_orders(db: Database, orders: Iterable[Dict[str, Any]]) -> list:
    """Resolve ``{itemId, quantity}`` lines to ``{itemId, name, quantity, price}``."""
    orders = list(orders)
    menu = menu_by_id(db, (it.get("itemId") for o in orders for it in o.get("items") or []))
    expanded = []
    for order in orders:
        lines = []
        for it in order.get("items") or []:
            entry = menu.get(it.get("itemId"))
            lines.append(
                {
                    "itemId": it.get("itemId"),
                    "name": entry["name"] if entry else f"item-{it.get('itemId')}",
                    "quantity": it.get("quantity"),
                    "price": entry["price"] if entry else 0,
                }
            )
        expanded.append({**order, "items": lines})
    return expanded
