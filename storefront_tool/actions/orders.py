"""Order history and return requests for the logged-in customer."""
import logging
from typing import Optional

from ..errors import NotAuthenticatedError, ReturnNotAllowedError
from ..gateway.client import CommerceGateway
from ..gateway.schema import Order
from .cart import CartOrchestrator

logger = logging.getLogger(__name__)

RETURNABLE_FULFILLMENT_STATUSES = {"delivered", "partially_delivered"}


def _normalize_return_items(items: list) -> list[dict]:
    """Accept ids or dicts and produce ``{"item_id", "quantity"}`` entries."""
    normalized = []
    for item in items:
        if isinstance(item, str):
            normalized.append({"item_id": item, "quantity": 1})
            continue
        item_id = item.get("item_id") or item.get("id") or item.get("line_item_id")
        if not item_id:
            raise ValueError("Each return item needs an item_id")
        quantity = int(item.get("quantity") or 1)
        if quantity < 1:
            raise ValueError("Return quantity must be at least 1")
        normalized.append({"item_id": item_id, "quantity": quantity})
    return normalized


class OrderService:
    def __init__(self, gateway: CommerceGateway, orchestrator: CartOrchestrator):
        self._gateway = gateway
        self._orchestrator = orchestrator
        self._orders: list[Order] = []

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    async def fetch_orders(self) -> list[Order]:
        """Newest first. Guests simply have no orders."""
        token = self._orchestrator.token
        if not token:
            self._orders = []
            return []
        self._orders = await self._gateway.list_orders(token)
        logger.info("Loaded %d orders", len(self._orders))
        return self.orders

    async def retrieve_order(self, order_id: str) -> Order:
        return await self._gateway.retrieve_order(order_id, self._orchestrator.token)

    async def create_return(
        self,
        order_id: str,
        items: list,
        return_shipping_option_id: Optional[str] = None,
    ) -> dict:
        """Request a return for delivered items of an order."""
        token = self._orchestrator.token
        if not token:
            raise NotAuthenticatedError("Please log in to request a return.")

        order = await self._gateway.retrieve_order(order_id, token)
        fulfillment = (order.fulfillment_status or "").lower()
        if fulfillment not in RETURNABLE_FULFILLMENT_STATUSES:
            raise ReturnNotAllowedError(order.fulfillment_status)

        normalized = _normalize_return_items(items)
        if not normalized:
            raise ValueError("Select at least one item to return")

        result = await self._gateway.create_return(order_id, normalized, return_shipping_option_id, token)
        logger.info("Return requested for order %s (%d items)", order_id, len(normalized))
        await self.fetch_orders()
        return result
