"""Razorpay Standard Checkout hosted in a Playwright page."""
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError, Page

from ..browser import BrowserManager
from ..errors import PaymentError
from .base import DismissCallback, PaymentWidget, SuccessCallback, WidgetOptions

logger = logging.getLogger(__name__)

CHECKOUT_SCRIPT_URL = "https://checkout.razorpay.com/v1/checkout.js"

_CHECKOUT_PAGE = f"""<!doctype html>
<html>
  <head><meta charset="utf-8"><title>Payment</title></head>
  <body><script src="{CHECKOUT_SCRIPT_URL}"></script></body>
</html>"""

_OPEN_CHECKOUT = """
(options) => {
    options.handler = (response) => window.onStorefrontPaymentSuccess(response);
    options.modal = { ondismiss: () => window.onStorefrontPaymentDismiss() };
    new window.Razorpay(options).open();
}
"""

_SCRIPT_LOAD_TIMEOUT = 30000


class RazorpayCheckoutWidget(PaymentWidget):
    """Loads checkout.js in a blank page and bridges its handler/ondismiss callbacks."""

    def __init__(self, browser: BrowserManager):
        self._browser = browser
        self._page: Optional[Page] = None

    async def open(
        self,
        options: WidgetOptions,
        on_success: SuccessCallback,
        on_dismiss: DismissCallback,
    ) -> None:
        page = await self._browser.open_blank_page()
        self._page = page

        await page.expose_function("onStorefrontPaymentSuccess", on_success)
        await page.expose_function("onStorefrontPaymentDismiss", on_dismiss)
        # The shopper closing the window counts as dismissal
        page.on("close", lambda _page: on_dismiss())

        try:
            await page.set_content(_CHECKOUT_PAGE, wait_until="load")
            await page.wait_for_function("() => window.Razorpay !== undefined", timeout=_SCRIPT_LOAD_TIMEOUT)
        except PlaywrightError as e:
            logger.error("Razorpay checkout script failed to load: %s", e)
            raise PaymentError("Failed to load the payment provider. Please try again.") from e

        await page.evaluate(_OPEN_CHECKOUT, options.to_checkout_options())
        logger.info("Razorpay checkout opened for order %s", options.order_id)

    async def close(self) -> None:
        if self._page is not None:
            page, self._page = self._page, None
            await self._browser.close_page(page)
