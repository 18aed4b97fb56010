"""Commerce backend gateway: HTTP client, entity models, response normalization."""
from .client import CommerceGateway
from .schema import (
    Address,
    Cart,
    CartTotals,
    Customer,
    LineItem,
    OnlinePayment,
    Order,
    PaymentCollection,
    PaymentSession,
    RateQuote,
    ShippingOption,
)

__all__ = [
    "CommerceGateway",
    "Address",
    "Cart",
    "CartTotals",
    "Customer",
    "LineItem",
    "OnlinePayment",
    "Order",
    "PaymentCollection",
    "PaymentSession",
    "RateQuote",
    "ShippingOption",
]
