"""Exception hierarchy shared by the gateway, the cart actions, and the MCP server."""
from typing import Any, Optional


class StorefrontError(Exception):
    """Base error. ``message`` is safe to show to the shopper."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CommerceAPIError(StorefrontError):
    """A backend call failed: non-2xx response, or no response at all (status None)."""

    def __init__(
        self,
        status: Optional[int],
        message: str,
        code: Optional[str] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.code = code
        self.payload = payload

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        if self.status is None:
            return f"Commerce API unreachable: {self.message}"
        return f"Commerce API error {self.status}: {self.message}"


class NotAuthenticatedError(StorefrontError):
    def __init__(self, message: str = "Please log in to continue."):
        super().__init__(message)


class OutOfStockError(StorefrontError):
    def __init__(self, message: str = "This item is out of stock."):
        super().__init__(message)


class AddressValidationError(StorefrontError):
    """One or more address fields failed validation. Nothing was sent to the backend."""

    def __init__(self, errors: dict[str, str], kind: str = "shipping"):
        super().__init__(f"Please complete all required {kind} address fields.")
        self.errors = errors
        self.kind = kind


class UndeliverableAddressError(StorefrontError):
    def __init__(self, postal_code: str):
        super().__init__(
            "We currently do not deliver to this pincode. Please use a different shipping address."
        )
        self.postal_code = postal_code


class InvalidCheckoutTransition(StorefrontError):
    """A checkout step was attempted out of order."""

    def __init__(self, state: str, event: str):
        super().__init__(f"Cannot {event.replace('_', ' ')} while checkout is {state.replace('_', ' ')}.")
        self.state = state
        self.event = event


class PaymentError(StorefrontError):
    pass


class PaymentFailedError(PaymentError):
    def __init__(self, status: str = ""):
        super().__init__("Payment did not complete successfully.")
        self.status = status


class PaymentTimeoutError(PaymentError):
    def __init__(self, attempts: int):
        super().__init__("Timed out waiting for payment confirmation.")
        self.attempts = attempts


class PaymentCancelledError(PaymentError):
    def __init__(self, message: str = "Payment was cancelled before completion."):
        super().__init__(message)


class ReturnNotAllowedError(StorefrontError):
    def __init__(self, fulfillment_status: Optional[str]):
        super().__init__("Returns can only be requested for delivered orders.")
        self.fulfillment_status = fulfillment_status
