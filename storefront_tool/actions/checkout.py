"""
Checkout coordinator — addresses, shipping selection, payment and completion.

Progress is an explicit state machine::

    collecting_addresses -> addresses_set -> shipping_selected
        -> payment_initialized -> completed

Setting addresses is allowed from any state (it starts a new attempt); every
other step checks the state it runs from and raises InvalidCheckoutTransition
when called out of order. There is no rollback: a failed step leaves the
backend cart as far as it got, and the next attempt overwrites it.
"""
import json
import logging
from enum import Enum
from typing import Optional

from ..errors import (
    AddressValidationError,
    CommerceAPIError,
    InvalidCheckoutTransition,
    PaymentError,
    StorefrontError,
    UndeliverableAddressError,
)
from ..gateway.client import CommerceGateway
from ..gateway.schema import Address, Cart, OnlinePayment, Order, PaymentCollection, ShippingOption
from ..output_sanitizer import is_cart_already_completed
from ..providers.base import PaymentWidget, WidgetOptions, collect_payment
from ..validators import normalize_address, validate_address
from .cart import CartOrchestrator
from .orders import OrderService
from .payment import PaymentConfirmationPoller
from .shipping import PaymentMode, ShippingRateReconciler

logger = logging.getLogger(__name__)

# Line items carried in the payment notes
_MAX_NOTE_ITEMS = 10


class CheckoutState(str, Enum):
    COLLECTING_ADDRESSES = "collecting_addresses"
    ADDRESSES_SET = "addresses_set"
    SHIPPING_SELECTED = "shipping_selected"
    PAYMENT_INITIALIZED = "payment_initialized"
    COMPLETED = "completed"


# event -> (states it may run from, resulting state)
_TRANSITIONS: dict[str, tuple[frozenset, Optional[CheckoutState]]] = {
    "set_addresses": (frozenset(CheckoutState), CheckoutState.ADDRESSES_SET),
    "load_shipping_options": (
        frozenset({CheckoutState.ADDRESSES_SET, CheckoutState.SHIPPING_SELECTED}),
        None,
    ),
    "attach_shipping": (
        frozenset({CheckoutState.ADDRESSES_SET, CheckoutState.SHIPPING_SELECTED}),
        CheckoutState.SHIPPING_SELECTED,
    ),
    "initialize_payment": (frozenset({CheckoutState.SHIPPING_SELECTED}), CheckoutState.PAYMENT_INITIALIZED),
    "complete": (frozenset({CheckoutState.PAYMENT_INITIALIZED}), CheckoutState.COMPLETED),
}


class CheckoutCoordinator:
    def __init__(
        self,
        gateway: CommerceGateway,
        orchestrator: CartOrchestrator,
        shipping: ShippingRateReconciler,
        orders: OrderService,
        poller: PaymentConfirmationPoller,
        cod_provider: str = "pp_system_default",
        online_provider: str = "pp_razorpay_razorpay",
        store_name: str = "Storefront",
        currency: str = "inr",
    ):
        self._gateway = gateway
        self._orchestrator = orchestrator
        self._shipping = shipping
        self._orders = orders
        self._poller = poller
        self._cod_provider = cod_provider
        self._online_provider = online_provider
        self._store_name = store_name
        self._currency = currency

        self._state = CheckoutState.COLLECTING_ADDRESSES
        self._payment_mode = PaymentMode.COD
        self._shipping_options: list[ShippingOption] = []
        self._selected_option_id: Optional[str] = None

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def payment_mode(self) -> PaymentMode:
        return self._payment_mode

    @property
    def shipping_options(self) -> list[ShippingOption]:
        return list(self._shipping_options)

    @property
    def selected_option(self) -> Optional[ShippingOption]:
        return self._find_option(self._selected_option_id)

    def reset(self) -> None:
        self._state = CheckoutState.COLLECTING_ADDRESSES
        self._payment_mode = PaymentMode.COD
        self._shipping_options = []
        self._selected_option_id = None

    def _check(self, event: str) -> None:
        allowed, _ = _TRANSITIONS[event]
        if self._state not in allowed:
            raise InvalidCheckoutTransition(self._state.value, event)

    def _advance(self, event: str) -> None:
        self._check(event)
        _, target = _TRANSITIONS[event]
        logger.debug("Checkout %s: %s -> %s", event, self._state.value, target.value)
        self._state = target

    def _find_option(self, option_id: Optional[str]) -> Optional[ShippingOption]:
        if not option_id:
            return None
        return next((o for o in self._shipping_options if o.id == option_id), None)

    def _customer_email(self, email: Optional[str]) -> Optional[str]:
        if email:
            return email
        customer = self._orchestrator.customer
        return customer.email if customer else None

    @staticmethod
    def _validated(shipping: Address | dict, billing: Address | dict | None) -> tuple[Address, Address]:
        """Normalize both addresses; billing defaults to shipping."""
        shipping = normalize_address(shipping)
        errors = validate_address(shipping)
        if errors:
            raise AddressValidationError(errors, kind="shipping")

        if billing is None:
            return shipping, shipping
        billing = normalize_address(billing)
        errors = validate_address(billing)
        if errors:
            raise AddressValidationError(errors, kind="billing")
        return shipping, billing

    async def _require_items(self) -> Cart:
        cart = await self._orchestrator.ensure_cart()
        if not cart.items:
            raise StorefrontError("Your cart is empty.")
        return cart

    # ---- addresses ----

    async def _check_serviceability(self, postal_code: str, token: Optional[str]) -> None:
        try:
            result = await self._gateway.check_serviceability(postal_code, token)
        except CommerceAPIError as e:
            logger.warning("Serviceability check failed for %s, continuing: %s", postal_code, e)
            return
        if result.get("serviceable") is False:
            logger.info("Postal code %s is not serviceable", postal_code)
            raise UndeliverableAddressError(postal_code)

    async def update_addresses_for_checkout(
        self,
        shipping: Address | dict,
        billing: Address | dict | None = None,
        email: Optional[str] = None,
    ) -> Cart:
        """Validate, check delivery coverage, and set both addresses in one update."""
        shipping, billing = self._validated(shipping, billing)
        cart = await self._require_items()
        token = self._orchestrator.token

        await self._check_serviceability(shipping.postal_code, token)

        body = {
            "shipping_address": shipping.to_payload(),
            "billing_address": billing.to_payload(),
        }
        email = self._customer_email(email)
        if email:
            body["email"] = email
        updated = await self._gateway.update_cart(cart.id, body, token)
        self._orchestrator.commit(updated)

        self._advance("set_addresses")
        self._shipping_options = []
        self._selected_option_id = None
        return updated

    # ---- shipping ----

    async def load_shipping_options(self, payment_mode: PaymentMode = PaymentMode.COD) -> list[ShippingOption]:
        """Fetch quoted options for the cart and preselect the first one."""
        self._check("load_shipping_options")
        payment_mode = PaymentMode(payment_mode)
        cart = await self._orchestrator.ensure_cart()
        options = await self._shipping.get_shipping_options(cart.id, payment_mode, self._orchestrator.token)

        self._payment_mode = payment_mode
        self._shipping_options = options
        self._selected_option_id = options[0].id if options else None
        return self.shipping_options

    def select_shipping_option(self, option_id: str) -> ShippingOption:
        option = self._find_option(option_id)
        if option is None:
            raise ValueError(f"Unknown shipping option: {option_id}")
        self._selected_option_id = option_id
        return option

    def _shipping_method_data(self, option_id: str, payment_mode: PaymentMode) -> dict:
        """Quoted metadata forwarded to the fulfillment provider with the method."""
        option = self._find_option(option_id)
        metadata = option.metadata if option else {}
        eta_days = metadata.get("eta_days")
        return {
            "shipping_type": metadata.get("shipping_type"),
            "shiprocket_eta": metadata.get("eta"),
            "shiprocket_eta_days": eta_days if isinstance(eta_days, int) else None,
            "payment_mode": payment_mode.value,
        }

    async def _attach_shipping(
        self, cart_id: str, option_id: str, payment_mode: PaymentMode, token: Optional[str]
    ) -> Cart:
        self._check("attach_shipping")
        updated = await self._gateway.add_shipping_method(
            cart_id, option_id, self._shipping_method_data(option_id, payment_mode), token
        )
        self._orchestrator.commit(updated)
        self._selected_option_id = option_id
        self._advance("attach_shipping")
        return updated

    async def _prepare(
        self,
        shipping: Address | dict,
        billing: Address | dict | None,
        option_id: str,
        payment_mode: PaymentMode,
        email: Optional[str],
    ) -> Cart:
        """Shipping address, billing address, then shipping method, one request each."""
        if not option_id:
            raise StorefrontError("Please select a shipping method.")
        shipping, billing = self._validated(shipping, billing)
        cart = await self._require_items()
        token = self._orchestrator.token

        body = {"shipping_address": shipping.to_payload()}
        email = self._customer_email(email)
        if email:
            body["email"] = email
        cart = await self._gateway.update_cart(cart.id, body, token)
        self._orchestrator.commit(cart)

        cart = await self._gateway.update_cart(cart.id, {"billing_address": billing.to_payload()}, token)
        self._orchestrator.commit(cart)
        self._advance("set_addresses")

        self._payment_mode = payment_mode
        return await self._attach_shipping(cart.id, option_id, payment_mode, token)

    # ---- payment ----

    async def initialize_payment(self, provider_id: str) -> PaymentCollection:
        """Create a payment collection with one session. Requires an attached shipping method."""
        self._check("initialize_payment")
        cart = self._orchestrator.cart
        token = self._orchestrator.token
        collection = await self._gateway.create_payment_collection(cart.id, token)
        collection = await self._gateway.init_payment_session(collection.id, provider_id, token)
        self._advance("initialize_payment")
        logger.info("Payment session (%s) initialized on cart %s", provider_id, cart.id)
        return collection

    async def _complete(self, cart_id: str, token: Optional[str], already_completed_ok: bool = False) -> Optional[Order]:
        self._check("complete")
        try:
            order = await self._gateway.complete_cart(cart_id, token)
        except CommerceAPIError as e:
            if not (already_completed_ok and is_cart_already_completed(e)):
                raise
            # The payment webhook completed the cart first
            logger.info("Cart %s was already completed", cart_id)
            order = None
        self._advance("complete")
        if order is not None:
            logger.info("Cart %s completed as order %s", cart_id, order.id)
        return order

    async def _after_completion(self) -> None:
        """Refresh order history (best effort), then start a fresh cart."""
        try:
            await self._orders.fetch_orders()
        except CommerceAPIError as e:
            logger.warning("Order list refresh after checkout failed: %s", e)
        await self._orchestrator.create_fresh_cart()

    async def complete_checkout(
        self,
        shipping: Address | dict,
        billing: Address | dict | None,
        option_id: str,
        email: Optional[str] = None,
    ) -> Order:
        """Pay-on-delivery checkout. Any failing step aborts and propagates."""
        cart = await self._prepare(shipping, billing, option_id, PaymentMode.COD, email)
        await self.initialize_payment(self._cod_provider)
        order = await self._complete(cart.id, self._orchestrator.token)
        await self._after_completion()
        return order

    async def start_online_payment(
        self,
        shipping: Address | dict,
        billing: Address | dict | None,
        option_id: str,
        email: Optional[str] = None,
    ) -> OnlinePayment:
        """Everything up to the payment widget. The cart is not completed."""
        cart = await self._prepare(shipping, billing, option_id, PaymentMode.ONLINE, email)
        collection = await self.initialize_payment(self._online_provider)
        session = collection.primary_session
        return OnlinePayment(
            cart_id=cart.id,
            payment_collection_id=collection.id,
            session=dict(session.data) if session else {},
        )

    def _widget_options(self, payment: OnlinePayment, shipping: Address, email: Optional[str]) -> WidgetOptions:
        session = payment.session
        key = session.get("razorpay_key_id") or session.get("key_id")
        order_id = session.get("order_id") or session.get("id")
        if not key or not order_id:
            raise PaymentError("Online payment is not available right now. Please choose cash on delivery.")

        cart = self._orchestrator.cart
        items = cart.items if cart else []
        totals = cart.totals() if cart else None
        note_items = [
            {
                "product_id": item.product_id or "",
                "title": item.title,
                "variant_id": item.variant_id or "",
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in items[:_MAX_NOTE_ITEMS]
        ]

        return WidgetOptions(
            key=key,
            amount=int(session.get("amount") or 0),
            currency=session.get("currency") or (cart.currency_code if cart else None) or self._currency,
            order_id=order_id,
            name=self._store_name,
            prefill={"name": shipping.full_name, "contact": shipping.phone, "email": email},
            notes={
                "customer_name": shipping.full_name or None,
                "customer_phone": shipping.phone,
                "customer_email": email,
                "cart_id": payment.cart_id,
                "cart_total": str(totals.total) if totals else None,
                "shipping_total": str(totals.shipping) if totals else None,
                "items": json.dumps(note_items) if note_items else None,
            },
        )

    async def _verify(self, payment_collection_id: str, response: dict, token: Optional[str]) -> None:
        """Hand the signed widget payload to the backend. Polling decides either way."""
        fields = ("razorpay_payment_id", "razorpay_order_id", "razorpay_signature")
        if not all(response.get(f) for f in fields):
            return
        try:
            await self._gateway.verify_payment(payment_collection_id, {f: response[f] for f in fields}, token)
        except CommerceAPIError as e:
            logger.warning("Payment verification failed, falling back to polling: %s", e)

    async def _refresh_after_failure(self) -> None:
        try:
            await self._orchestrator.refresh_cart()
        except CommerceAPIError as e:
            logger.warning("Cart refresh after failed payment did not succeed: %s", e)

    async def pay_online(
        self,
        shipping: Address | dict,
        billing: Address | dict | None,
        option_id: str,
        widget: PaymentWidget,
        email: Optional[str] = None,
    ) -> Optional[Order]:
        """
        Online checkout through the provider widget.

        Waits for the backend to see the payment before completing the cart.
        Returns the order, or None when the cart had already been completed
        on the backend's side. On any failure, including the shopper
        dismissing the widget, the cart is refreshed (never discarded) and
        the error re-raised.
        """
        email = self._customer_email(email)
        try:
            payment = await self.start_online_payment(shipping, billing, option_id, email)
            token = self._orchestrator.token
            options = self._widget_options(payment, normalize_address(shipping), email)
            response = await collect_payment(widget, options)
            await self._verify(payment.payment_collection_id, response, token)
            await self._poller.wait_for_confirmation(payment.cart_id, token)
            order = await self._complete(payment.cart_id, token, already_completed_ok=True)
        except Exception as e:
            logger.warning("Online payment did not complete: %s", e)
            await self._refresh_after_failure()
            raise

        await self._after_completion()
        return order
