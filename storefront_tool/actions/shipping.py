"""Shipping rate reconciler — backend options re-priced by live carrier quotes."""
import logging
from enum import Enum
from typing import Optional

from ..errors import CommerceAPIError
from ..gateway.client import CommerceGateway
from ..gateway.schema import RateQuote, ShippingOption

logger = logging.getLogger(__name__)

# Option types the carrier quote can re-price
QUOTED_TYPES = {
    "standard": "Standard delivery",
    "express": "Express delivery",
}


class PaymentMode(str, Enum):
    COD = "cod"
    ONLINE = "online"


def _eta_days(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        days = int(value.strip())
        return days if days > 0 else None
    return None


def format_delivery_estimate(option: ShippingOption) -> str:
    """Human-readable transit time from an option's metadata, or ""."""
    eta = option.metadata.get("eta")
    days = _eta_days(option.metadata.get("eta_days")) or _eta_days(eta)
    if days:
        return f"Delivers in {days} day{'' if days == 1 else 's'}"
    if isinstance(eta, str) and eta.strip():
        return f"Delivery estimate: {eta.strip()}"
    return ""


def _quote_label(type_code: str, quote: RateQuote) -> str:
    if quote.label:
        return quote.label
    label = QUOTED_TYPES[type_code]
    days = _eta_days(quote.eta_days) or _eta_days(quote.eta)
    if days:
        return f"{label} ({days} day{'' if days == 1 else 's'})"
    if quote.eta:
        return f"{label} ({quote.eta})"
    return label


def merge_shipping_options(options: list[ShippingOption], quotes: list[RateQuote]) -> list[ShippingOption]:
    """
    Overlay quotes onto backend options by type code.

    The option list, ids, and order always come from the backend; amount and
    label come from the quote when one with a price exists for that type.
    """
    by_type: dict[str, RateQuote] = {}
    for quote in quotes:
        code = quote.type.strip().lower()
        if code in QUOTED_TYPES and quote.amount is not None and code not in by_type:
            by_type[code] = quote

    merged = []
    for option in options:
        code = option.type_code
        quote = by_type.get(code)
        if quote is None:
            merged.append(option)
            continue
        metadata = {
            **option.metadata,
            "shipping_type": code,
            "eta": quote.eta,
            "eta_days": _eta_days(quote.eta_days) or _eta_days(quote.eta),
            "quoted": True,
        }
        if quote.courier:
            metadata["courier"] = quote.courier
        merged.append(option.model_copy(update={
            "amount": quote.amount,
            "name": _quote_label(code, quote),
            "metadata": metadata,
        }))
    return merged


class ShippingRateReconciler:
    def __init__(self, gateway: CommerceGateway):
        self._gateway = gateway

    async def get_shipping_options(
        self,
        cart_id: str,
        payment_mode: PaymentMode,
        token: Optional[str] = None,
    ) -> list[ShippingOption]:
        """Backend options for the cart, re-priced by carrier quotes when those are available."""
        options = await self._gateway.list_shipping_options(cart_id, token)
        if not options:
            return []

        try:
            quotes = await self._gateway.quote_shipping_rates(cart_id, PaymentMode(payment_mode).value, token)
        except CommerceAPIError as e:
            logger.warning("Rate quote failed for cart %s, using backend prices: %s", cart_id, e)
            return options

        logger.info("Got %d rate quotes for %d options on cart %s", len(quotes), len(options), cart_id)
        return merge_shipping_options(options, quotes)
