"""Payment widget abstraction for online checkout."""
from .base import PaymentWidget, WidgetOptions, collect_payment
from .razorpay import RazorpayCheckoutWidget

__all__ = ["PaymentWidget", "WidgetOptions", "collect_payment", "RazorpayCheckoutWidget"]
