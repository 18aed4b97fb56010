"""
Storefront — the one object an application session talks to.

Wires the gateway, session store, and cart/checkout/order/account actions
together and applies a single error policy at the boundary: reads and cart
tweaks record a shopper-facing ``error`` and leave the cart as it was, while
adds, logins, checkout, and account changes record it and raise.
"""
import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .actions.account import AccountService
from .actions.cart import CartOrchestrator
from .actions.checkout import CheckoutCoordinator, CheckoutState
from .actions.line_items import LineItemManager
from .actions.orders import OrderService
from .actions.payment import PaymentConfirmationPoller
from .actions.shipping import PaymentMode, ShippingRateReconciler
from .browser import BrowserManager
from .config import Settings
from .errors import CommerceAPIError, StorefrontError
from .gateway.client import CommerceGateway
from .gateway.schema import Address, Cart, CartTotals, Customer, Order, ShippingOption
from .output_sanitizer import user_facing_message
from .providers.base import PaymentWidget
from .providers.razorpay import RazorpayCheckoutWidget
from .session.crypto import SessionCrypto
from .session.store import SessionStore

logger = logging.getLogger(__name__)


class Storefront:
    def __init__(
        self,
        settings: Settings,
        gateway: Optional[CommerceGateway] = None,
        session: Optional[SessionStore] = None,
        widget: Optional[PaymentWidget] = None,
        sleep=asyncio.sleep,
    ):
        self._settings = settings
        self._gateway = gateway or CommerceGateway(
            settings.base_url, settings.publishable_key, timeout=settings.timeout
        )
        self._session = session or SessionStore(settings.session_path, SessionCrypto(settings.key_path))

        self._cart = CartOrchestrator(self._gateway, self._session)
        self._line_items = LineItemManager(self._gateway, self._cart)
        self._orders = OrderService(self._gateway, self._cart)
        self._account = AccountService(self._gateway, self._cart)
        self._checkout = CheckoutCoordinator(
            self._gateway,
            self._cart,
            ShippingRateReconciler(self._gateway),
            self._orders,
            PaymentConfirmationPoller(
                self._gateway,
                max_attempts=settings.poll_attempts,
                delay=settings.poll_delay,
                sleep=sleep,
            ),
            cod_provider=settings.cod_provider,
            online_provider=settings.online_provider,
            store_name=settings.store_name,
            currency=settings.currency,
        )

        self._widget = widget
        self._browser: Optional[BrowserManager] = None
        self._error: Optional[str] = None

    # ---- read-only state ----

    @property
    def cart(self) -> Optional[Cart]:
        return self._cart.cart

    @property
    def totals(self) -> CartTotals:
        cart = self._cart.cart
        return cart.totals() if cart else CartTotals()

    @property
    def cart_count(self) -> int:
        cart = self._cart.cart
        return cart.item_count if cart else 0

    @property
    def orders(self) -> list[Order]:
        return self._orders.orders

    @property
    def customer(self) -> Optional[Customer]:
        return self._cart.customer

    @property
    def is_authenticated(self) -> bool:
        return self._cart.is_authenticated

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def checkout_state(self) -> CheckoutState:
        return self._checkout.state

    @property
    def shipping_options(self) -> list[ShippingOption]:
        return self._checkout.shipping_options

    @property
    def selected_shipping_option(self) -> Optional[ShippingOption]:
        return self._checkout.selected_option

    def is_updating(self, item_id: str) -> bool:
        return self._line_items.is_updating(item_id)

    # ---- error policy ----

    @contextmanager
    def _reported(self, fallback: str, reraise: bool = True) -> Iterator[None]:
        self._error = None
        try:
            yield
        except StorefrontError as e:
            self._error = user_facing_message(e, fallback)
            logger.warning("%s: %s", fallback, e)
            if not reraise:
                return
            if isinstance(e, CommerceAPIError):
                raise StorefrontError(self._error) from e
            raise

    # ---- session ----

    async def bootstrap(self) -> Cart:
        with self._reported("Failed to load your cart"):
            return await self._cart.bootstrap()

    async def login(self, email: str, password: str) -> Customer:
        with self._reported("Login failed"):
            customer = await self._cart.login(email, password)
        self._checkout.reset()
        return customer

    def logout(self) -> None:
        self._cart.logout()
        self._checkout.reset()
        self._error = None

    # ---- cart ----

    async def ensure_cart(self) -> Cart:
        with self._reported("Failed to load your cart"):
            return await self._cart.ensure_cart()

    async def refresh_cart(self) -> Optional[Cart]:
        with self._reported("Failed to refresh your cart", reraise=False):
            return await self._cart.refresh_cart()
        return self._cart.cart

    async def add_to_cart(self, variant_id: str, quantity: int = 1) -> Cart:
        with self._reported("Failed to add to cart"):
            return await self._line_items.add_to_cart(variant_id, quantity)

    async def update_quantity(self, line_item_id: str, quantity: int) -> Optional[Cart]:
        with self._reported("Failed to update quantity", reraise=False):
            return await self._line_items.update_cart_quantity(line_item_id, quantity)
        return self._cart.cart

    async def remove_item(self, line_item_id: str) -> Optional[Cart]:
        with self._reported("Failed to remove item", reraise=False):
            return await self._line_items.remove_from_cart(line_item_id)
        return self._cart.cart

    # ---- checkout ----

    async def set_checkout_addresses(
        self,
        shipping: Address | dict,
        billing: Address | dict | None = None,
        email: Optional[str] = None,
    ) -> Cart:
        with self._reported("Failed to update address"):
            return await self._checkout.update_addresses_for_checkout(shipping, billing, email)

    async def get_shipping_options(self, payment_mode: PaymentMode = PaymentMode.COD) -> list[ShippingOption]:
        with self._reported("Failed to load shipping options", reraise=False):
            return await self._checkout.load_shipping_options(payment_mode)
        return []

    def select_shipping_option(self, option_id: str) -> ShippingOption:
        return self._checkout.select_shipping_option(option_id)

    async def checkout(
        self,
        shipping: Address | dict,
        billing: Address | dict | None,
        option_id: str,
        email: Optional[str] = None,
    ) -> Order:
        """Pay on delivery."""
        with self._reported("Checkout failed"):
            return await self._checkout.complete_checkout(shipping, billing, option_id, email)

    def _payment_widget(self) -> PaymentWidget:
        if self._widget is None:
            self._browser = BrowserManager(headless=self._settings.headless)
            self._widget = RazorpayCheckoutWidget(self._browser)
        return self._widget

    async def pay_online(
        self,
        shipping: Address | dict,
        billing: Address | dict | None,
        option_id: str,
        email: Optional[str] = None,
        widget: Optional[PaymentWidget] = None,
    ) -> Optional[Order]:
        with self._reported("Payment failed"):
            return await self._checkout.pay_online(
                shipping, billing, option_id, widget or self._payment_widget(), email
            )

    # ---- orders ----

    async def fetch_orders(self) -> list[Order]:
        with self._reported("Failed to load orders", reraise=False):
            return await self._orders.fetch_orders()
        return self._orders.orders

    async def retrieve_order(self, order_id: str) -> Order:
        with self._reported("Failed to load order"):
            return await self._orders.retrieve_order(order_id)

    async def create_return(
        self,
        order_id: str,
        items: list,
        return_shipping_option_id: Optional[str] = None,
    ) -> dict:
        with self._reported("Failed to request return"):
            return await self._orders.create_return(order_id, items, return_shipping_option_id)

    # ---- account ----

    async def register(self, email: str, password: str, profile: Optional[dict] = None) -> Customer:
        with self._reported("Registration failed"):
            return await self._account.register(email, password, profile)

    async def refresh_profile(self) -> Customer:
        with self._reported("Failed to load profile"):
            return await self._account.refresh_profile()

    async def update_profile(self, body: dict) -> Customer:
        with self._reported("Failed to update profile"):
            return await self._account.update_profile(body)

    async def list_addresses(self) -> list[Address]:
        with self._reported("Failed to load addresses"):
            return await self._account.list_addresses()

    async def add_address(self, address: Address | dict) -> Customer:
        with self._reported("Failed to add address"):
            return await self._account.add_address(address)

    async def update_address(self, address_id: str, address: Address | dict) -> Customer:
        with self._reported("Failed to update address"):
            return await self._account.update_address(address_id, address)

    async def delete_address(self, address_id: str) -> Customer:
        with self._reported("Failed to delete address"):
            return await self._account.delete_address(address_id)

    # ---- teardown ----

    async def close(self) -> None:
        """Stop accepting state updates and release network and browser resources."""
        self._cart.close()
        await self._gateway.aclose()
        if self._browser is not None:
            await self._browser.close()
        logger.info("Storefront session closed")
