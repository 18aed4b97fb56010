"""
Commerce API gateway — one coroutine per backend route.

The only component that performs network I/O. Every request carries the
publishable key; authenticated requests add the customer's bearer token.
Failures surface as CommerceAPIError. There are no retries here; retry
policy belongs to the callers.
"""
import logging
from typing import Any, Optional

import httpx

from ..errors import CommerceAPIError
from . import normalize
from .schema import Address, Cart, Customer, Order, PaymentCollection, RateQuote, ShippingOption

logger = logging.getLogger(__name__)

PUBLISHABLE_KEY_HEADER = "x-publishable-api-key"


def _error_message(response: httpx.Response) -> tuple[str, Optional[str], Any]:
    """Pull (message, code, payload) out of an error response."""
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text or response.reason_phrase or "Request failed", None, text

    message = ""
    code = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or ""
        if not message and isinstance(payload.get("data"), dict):
            message = payload["data"].get("message") or ""
        errors = payload.get("errors")
        if not message and isinstance(errors, list) and errors:
            first = errors[0]
            message = first.get("message", "") if isinstance(first, dict) else str(first)
        code = payload.get("code") or payload.get("type")
    elif isinstance(payload, str):
        message = payload
    return str(message or response.reason_phrase or "Request failed"), code, payload


class CommerceGateway:
    """Typed wrappers over the store REST API."""

    def __init__(
        self,
        base_url: str,
        publishable_key: str,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._publishable_key = publishable_key
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    def _headers(self, token: Optional[str]) -> dict[str, str]:
        headers = {PUBLISHABLE_KEY_HEADER: self._publishable_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Any = None,
        params: Optional[dict] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, headers=self._headers(token), json=json, params=params
            )
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise CommerceAPIError(None, str(e) or type(e).__name__) from e

        if not response.is_success:
            message, code, payload = _error_message(response)
            logger.warning("%s %s -> %d: %s", method, path, response.status_code, message)
            raise CommerceAPIError(response.status_code, message, code=code, payload=payload)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- carts ----

    async def create_cart(self, token: Optional[str] = None) -> Cart:
        return normalize.normalize_cart(await self._request("POST", "/store/carts", token, json={}))

    async def get_cart(self, cart_id: str, token: Optional[str] = None) -> Cart:
        return normalize.normalize_cart(await self._request("GET", f"/store/carts/{cart_id}", token))

    async def update_cart(self, cart_id: str, body: dict, token: Optional[str] = None) -> Cart:
        return normalize.normalize_cart(await self._request("POST", f"/store/carts/{cart_id}", token, json=body))

    async def transfer_cart(self, cart_id: str, token: str) -> Cart:
        """Claim a guest cart for the logged-in customer."""
        return normalize.normalize_cart(
            await self._request("POST", f"/store/carts/{cart_id}/transfer", token, json={})
        )

    async def complete_cart(self, cart_id: str, token: Optional[str] = None) -> Order:
        data = await self._request("POST", f"/store/carts/{cart_id}/complete", token, json={})
        # Completion can "succeed" with the cart handed back instead of an order
        if isinstance(data, dict) and data.get("type") == "cart":
            error = data.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise CommerceAPIError(409, message or "Cart could not be completed", payload=data)
        return normalize.normalize_order(data)

    # ---- line items ----

    async def add_line_item(
        self, cart_id: str, variant_id: str, quantity: int, token: Optional[str] = None
    ) -> Cart:
        data = await self._request(
            "POST",
            f"/store/carts/{cart_id}/line-items",
            token,
            json={"variant_id": variant_id, "quantity": quantity},
        )
        return normalize.normalize_cart(data)

    async def update_line_item(
        self, cart_id: str, line_item_id: str, quantity: int, token: Optional[str] = None
    ) -> Cart:
        data = await self._request(
            "POST",
            f"/store/carts/{cart_id}/line-items/{line_item_id}",
            token,
            json={"quantity": quantity},
        )
        return normalize.normalize_cart(data)

    async def remove_line_item(
        self, cart_id: str, line_item_id: str, token: Optional[str] = None
    ) -> Optional[Cart]:
        """Returns the updated cart when the backend sends one, else None."""
        data = await self._request("DELETE", f"/store/carts/{cart_id}/line-items/{line_item_id}", token)
        return normalize.normalize_removed_line_item(data)

    # ---- shipping ----

    async def list_shipping_options(self, cart_id: str, token: Optional[str] = None) -> list[ShippingOption]:
        data = await self._request("GET", "/store/shipping-options", token, params={"cart_id": cart_id})
        return normalize.normalize_shipping_options(data)

    async def quote_shipping_rates(
        self, cart_id: str, payment_type: str, token: Optional[str] = None
    ) -> list[RateQuote]:
        data = await self._request(
            "POST",
            "/store/shipping/rates",
            token,
            json={"cart_id": cart_id, "payment_type": payment_type},
        )
        return normalize.normalize_rate_quotes(data)

    async def check_serviceability(self, postal_code: str, token: Optional[str] = None) -> dict:
        data = await self._request(
            "POST",
            "/store/shipping/serviceability",
            token,
            json={"postal_code": postal_code.strip()},
        )
        return data if isinstance(data, dict) else {}

    async def add_shipping_method(
        self, cart_id: str, option_id: str, data: Optional[dict] = None, token: Optional[str] = None
    ) -> Cart:
        payload = await self._request(
            "POST",
            f"/store/carts/{cart_id}/shipping-methods",
            token,
            json={"option_id": option_id, "data": data or {}},
        )
        return normalize.normalize_cart(payload)

    # ---- payment ----

    async def create_payment_collection(self, cart_id: str, token: Optional[str] = None) -> PaymentCollection:
        data = await self._request("POST", "/store/payment-collections", token, json={"cart_id": cart_id})
        return normalize.normalize_payment_collection(data)

    async def init_payment_session(
        self, payment_collection_id: str, provider_id: str, token: Optional[str] = None
    ) -> PaymentCollection:
        data = await self._request(
            "POST",
            f"/store/payment-collections/{payment_collection_id}/payment-sessions",
            token,
            json={"provider_id": provider_id},
        )
        return normalize.normalize_payment_collection(data)

    async def verify_payment(
        self, payment_collection_id: str, response: dict, token: Optional[str] = None
    ) -> Any:
        """Hand the gateway's signed success payload to the backend for verification."""
        return await self._request(
            "POST",
            f"/store/payment-collections/{payment_collection_id}/verify",
            token,
            json=response,
        )

    # ---- orders ----

    async def list_orders(
        self,
        token: str,
        limit: int = 50,
        offset: int = 0,
        order: str = "-created_at",
    ) -> list[Order]:
        data = await self._request(
            "GET", "/store/orders", token, params={"limit": limit, "offset": offset, "order": order}
        )
        return normalize.normalize_orders(data)

    async def retrieve_order(self, order_id: str, token: Optional[str] = None) -> Order:
        return normalize.normalize_order(await self._request("GET", f"/store/orders/{order_id}", token))

    async def create_return(
        self,
        order_id: str,
        items: list[dict],
        return_shipping_option_id: Optional[str] = None,
        token: Optional[str] = None,
    ) -> dict:
        body: dict[str, Any] = {"order_id": order_id, "items": items}
        if return_shipping_option_id:
            body["return_shipping"] = {"option_id": return_shipping_option_id}
        data = await self._request("POST", "/store/returns", token, json=body)
        result = normalize.unwrap(data, "return")
        return result if isinstance(result, dict) else {}

    # ---- customers ----

    async def login(self, email: str, password: str) -> str:
        data = await self._request("POST", "/auth/customer/emailpass", json={"email": email, "password": password})
        token = normalize.extract_token(data)
        if not token:
            raise CommerceAPIError(None, "Login succeeded but no token was returned.", payload=data)
        return token

    async def register(self, email: str, password: str) -> str:
        data = await self._request(
            "POST", "/auth/customer/emailpass/register", json={"email": email, "password": password}
        )
        token = normalize.extract_token(data)
        if not token:
            raise CommerceAPIError(None, "Registration succeeded but no token was returned.", payload=data)
        return token

    async def create_customer(self, token: str, profile: dict) -> Customer:
        return normalize.normalize_customer(await self._request("POST", "/store/customers", token, json=profile))

    async def get_customer(self, token: str) -> Customer:
        return normalize.normalize_customer(await self._request("GET", "/store/customers/me", token))

    async def update_customer(self, token: str, body: dict) -> Customer:
        return normalize.normalize_customer(
            await self._request("POST", "/store/customers/me", token, json=body)
        )

    async def list_addresses(self, token: str) -> list[Address]:
        return normalize.normalize_addresses(await self._request("GET", "/store/customers/me/addresses", token))

    async def add_address(self, token: str, address: Address) -> Customer:
        data = await self._request("POST", "/store/customers/me/addresses", token, json=address.to_payload())
        return normalize.normalize_customer(data)

    async def update_address(self, token: str, address_id: str, address: Address) -> Customer:
        data = await self._request(
            "POST", f"/store/customers/me/addresses/{address_id}", token, json=address.to_payload()
        )
        return normalize.normalize_customer(data)

    async def delete_address(self, token: str, address_id: str) -> Customer:
        await self._request("DELETE", f"/store/customers/me/addresses/{address_id}", token)
        # The delete answer is a minimal wrapper without the remaining addresses
        return await self.get_customer(token)
