"""Abstract base class for hosted payment widgets."""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..errors import PaymentCancelledError

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[dict], None]
DismissCallback = Callable[..., None]


@dataclass
class WidgetOptions:
    """What the provider's checkout needs to collect one payment."""
    key: str
    amount: int
    currency: str
    order_id: str
    name: str = ""
    description: str = "Order payment"
    prefill: dict[str, Any] = field(default_factory=dict)
    notes: dict[str, Any] = field(default_factory=dict)

    def to_checkout_options(self) -> dict[str, Any]:
        """Options object for the provider script, without empty values."""
        return {
            "key": self.key,
            "amount": self.amount,
            "currency": self.currency.upper(),
            "name": self.name,
            "description": self.description,
            "order_id": self.order_id,
            "prefill": {k: v for k, v in self.prefill.items() if v},
            "notes": {k: v for k, v in self.notes.items() if v is not None and v != ""},
        }


class PaymentWidget(ABC):
    """A provider checkout that reports back through two callbacks."""

    @abstractmethod
    async def open(
        self,
        options: WidgetOptions,
        on_success: SuccessCallback,
        on_dismiss: DismissCallback,
    ) -> None:
        """Show the widget. Exactly one callback fires once the shopper is done."""
        ...

    async def close(self) -> None:
        """Release whatever ``open`` acquired."""
        return None


async def collect_payment(widget: PaymentWidget, options: WidgetOptions) -> dict:
    """
    Open the widget and wait for the shopper.

    Returns the provider's success payload. Dismissal raises
    PaymentCancelledError. Cancelling the awaiting task closes the widget.
    """
    loop = asyncio.get_running_loop()
    outcome: asyncio.Future = loop.create_future()

    def on_success(response: Optional[dict] = None) -> None:
        if not outcome.done():
            outcome.set_result(response or {})

    def on_dismiss(*_args: Any) -> None:
        if not outcome.done():
            outcome.set_exception(PaymentCancelledError())

    try:
        await widget.open(options, on_success, on_dismiss)
        response = await outcome
        logger.info("Payment widget reported success for order %s", options.order_id)
        return response
    finally:
        await widget.close()
