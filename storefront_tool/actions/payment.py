"""Payment confirmation poller — waits for the gateway webhook to land on the cart."""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..errors import PaymentFailedError, PaymentTimeoutError
from ..gateway.client import CommerceGateway
from ..gateway.schema import Cart

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"authorized", "captured", "succeeded", "paid"})
FAILURE_STATUSES = frozenset({"canceled", "cancelled", "failed", "error"})

DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_DELAY = 1.5


class PaymentOutcome(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def payment_statuses(cart: Cart) -> tuple[str, str]:
    """(collection status, primary session status), lowercased, "" when absent."""
    collection = cart.payment_collection
    collection_status = (collection.status if collection else None) or cart.payment_status or ""
    session = collection.primary_session if collection else None
    session_status = session.status if session else ""
    return collection_status.strip().lower(), (session_status or "").strip().lower()


def classify_payment(cart: Cart) -> PaymentOutcome:
    collection_status, session_status = payment_statuses(cart)
    if session_status in SUCCESS_STATUSES or collection_status in SUCCESS_STATUSES:
        return PaymentOutcome.SUCCEEDED
    if session_status in FAILURE_STATUSES or collection_status in FAILURE_STATUSES:
        return PaymentOutcome.FAILED
    return PaymentOutcome.PENDING


class PaymentConfirmationPoller:
    """Bounded re-fetch loop; the only long-lived wait in a checkout."""

    def __init__(
        self,
        gateway: CommerceGateway,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay: float = DEFAULT_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._gateway = gateway
        self._max_attempts = max_attempts
        self._delay = delay
        self._sleep = sleep

    async def wait_for_confirmation(self, cart_id: str, token: Optional[str] = None) -> Cart:
        """
        Poll the cart until its payment is terminal.

        Returns the confirmed cart. Raises PaymentFailedError on an explicit
        failure status (no further polling) and PaymentTimeoutError once all
        attempts are used. Cancelling the awaiting task stops the loop.
        """
        for attempt in range(1, self._max_attempts + 1):
            cart = await self._gateway.get_cart(cart_id, token)
            outcome = classify_payment(cart)
            if outcome is PaymentOutcome.SUCCEEDED:
                logger.info("Payment confirmed for cart %s after %d poll(s)", cart_id, attempt)
                return cart
            if outcome is PaymentOutcome.FAILED:
                collection_status, session_status = payment_statuses(cart)
                logger.warning(
                    "Payment failed for cart %s (collection=%s, session=%s)",
                    cart_id, collection_status, session_status,
                )
                raise PaymentFailedError(session_status or collection_status)
            if attempt < self._max_attempts:
                await self._sleep(self._delay)

        logger.warning("Payment confirmation timed out for cart %s after %d polls", cart_id, self._max_attempts)
        raise PaymentTimeoutError(self._max_attempts)
