"""
Response-shape normalization.

The backend nests payloads under a named key on some routes and returns them
bare on others; list routes may also wrap the array under ``data``. Each entity
gets exactly one function here so nothing above the gateway has to care.
"""
from typing import Any, Optional

from .schema import Address, Cart, Customer, Order, PaymentCollection, RateQuote, ShippingOption


def unwrap(data: Any, key: str) -> Any:
    """Return ``data[key]`` when the payload is wrapped, else the payload itself."""
    if isinstance(data, dict) and isinstance(data.get(key), dict):
        return data[key]
    return data


def as_list(data: Any, key: str) -> list:
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    for candidate in (key, "data"):
        if isinstance(data.get(candidate), list):
            return data[candidate]
    return []


def normalize_cart(data: Any) -> Cart:
    return Cart.model_validate(unwrap(data, "cart"))


def normalize_removed_line_item(data: Any) -> Optional[Cart]:
    """
    Line-item deletion answers with nothing, the full cart, or a deletion
    wrapper whose ``parent`` may be the updated cart. Returns a cart only when
    one is actually present; None means "re-fetch".
    """
    if not data or not isinstance(data, dict):
        return None
    if isinstance(data.get("cart"), dict):
        return Cart.model_validate(data["cart"])
    parent = data.get("parent")
    if isinstance(parent, dict) and parent.get("id") and isinstance(parent.get("items"), list):
        return Cart.model_validate(parent)
    if data.get("object") == "cart" and data.get("id"):
        return Cart.model_validate(data)
    return None


def normalize_shipping_options(data: Any) -> list[ShippingOption]:
    return [ShippingOption.model_validate(o) for o in as_list(data, "shipping_options")]


def normalize_rate_quotes(data: Any) -> list[RateQuote]:
    """Accepts a list of quotes, ``{"rates": [...]}``, or a type-keyed mapping."""
    data = unwrap(data, "rates")
    if isinstance(data, dict) and not isinstance(data.get("rates"), list) and not isinstance(data.get("data"), list):
        quotes = []
        for type_code, quote in data.items():
            if isinstance(quote, dict):
                quotes.append(RateQuote.model_validate({"type": type_code, **quote}))
        return quotes
    return [RateQuote.model_validate(q) for q in as_list(data, "rates") if isinstance(q, dict) and q.get("type")]


def normalize_payment_collection(data: Any) -> PaymentCollection:
    return PaymentCollection.model_validate(unwrap(data, "payment_collection"))


def normalize_order(data: Any) -> Order:
    return Order.model_validate(unwrap(data, "order"))


def normalize_orders(data: Any) -> list[Order]:
    return [Order.model_validate(o) for o in as_list(data, "orders")]


def normalize_customer(data: Any) -> Customer:
    return Customer.model_validate(unwrap(data, "customer"))


def normalize_addresses(data: Any) -> list[Address]:
    items = as_list(data, "addresses")
    if not items and isinstance(data, dict) and isinstance(data.get("customer"), dict):
        items = data["customer"].get("addresses") or []
    return [Address.model_validate(a) for a in items]


def extract_token(data: Any) -> Optional[str]:
    if not data:
        return None
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        return data.get("token") or data.get("access_token") or data.get("bearer_token")
    return None
