"""Line item add / update / remove, with stale-cart recovery."""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from ..errors import CommerceAPIError, OutOfStockError
from ..gateway.client import CommerceGateway
from ..gateway.schema import Cart
from ..output_sanitizer import is_inventory_error
from .cart import CartOrchestrator

logger = logging.getLogger(__name__)


class LineItemManager:
    """Mutates cart contents through the orchestrator's snapshot."""

    def __init__(self, gateway: CommerceGateway, orchestrator: CartOrchestrator):
        self._gateway = gateway
        self._orchestrator = orchestrator
        self._updating: set[str] = set()

    @property
    def updating(self) -> frozenset[str]:
        """Ids (line item, or variant for adds) with a request in flight."""
        return frozenset(self._updating)

    def is_updating(self, item_id: str) -> bool:
        return item_id in self._updating

    @contextmanager
    def _in_flight(self, item_id: str) -> Iterator[None]:
        self._updating.add(item_id)
        try:
            yield
        finally:
            self._updating.discard(item_id)

    async def add_to_cart(self, variant_id: str, quantity: int = 1) -> Cart:
        """
        Add a variant to the cart.

        A 404 means the cart behind our stored id is gone: the cart is
        recreated and the add retried exactly once, without backoff. A second
        failure propagates.
        """
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        with self._in_flight(variant_id):
            cart = await self._orchestrator.ensure_cart()
            token = self._orchestrator.token
            try:
                updated = await self._gateway.add_line_item(cart.id, variant_id, quantity, token)
            except CommerceAPIError as e:
                if is_inventory_error(e):
                    raise OutOfStockError() from e
                if not e.is_not_found:
                    raise
                logger.warning("Cart %s not found while adding %s; recreating", cart.id, variant_id)
                cart = await self._orchestrator.recreate_cart()
                try:
                    updated = await self._gateway.add_line_item(cart.id, variant_id, quantity, token)
                except CommerceAPIError as retry_error:
                    if is_inventory_error(retry_error):
                        raise OutOfStockError() from retry_error
                    raise

            self._orchestrator.commit(updated)
            logger.info("Added %dx %s to cart %s", quantity, variant_id, updated.id)
            return updated

    async def update_cart_quantity(self, line_item_id: str, quantity: int) -> Optional[Cart]:
        """Set a line item's quantity. Quantities of zero or less are ignored."""
        if quantity <= 0:
            return None

        with self._in_flight(line_item_id):
            cart = await self._orchestrator.ensure_cart()
            try:
                updated = await self._gateway.update_line_item(
                    cart.id, line_item_id, quantity, self._orchestrator.token
                )
            except CommerceAPIError as e:
                if is_inventory_error(e):
                    raise OutOfStockError() from e
                raise
            self._orchestrator.commit(updated)
            return updated

    async def remove_from_cart(self, line_item_id: str) -> Optional[Cart]:
        """
        Remove a line item. Never creates a cart: uses the cart the backend
        returns, else re-fetches it; on 404 refreshes once and stops.
        """
        cart = self._orchestrator.cart
        if cart is None:
            logger.info("No cart loaded; nothing to remove %s from", line_item_id)
            return None

        token = self._orchestrator.token
        with self._in_flight(line_item_id):
            try:
                updated = await self._gateway.remove_line_item(cart.id, line_item_id, token)
            except CommerceAPIError as e:
                if not e.is_not_found:
                    raise
                logger.warning("Line item %s or cart %s is stale; refreshing", line_item_id, cart.id)
                return await self._refetch(cart.id)

            if updated is not None:
                self._orchestrator.commit(updated)
                return updated
            return await self._refetch(cart.id)

    async def _refetch(self, cart_id: str) -> Optional[Cart]:
        try:
            refreshed = await self._gateway.get_cart(cart_id, self._orchestrator.token)
        except CommerceAPIError as e:
            logger.warning("Refresh of cart %s failed, keeping current state: %s", cart_id, e)
            return self._orchestrator.cart
        self._orchestrator.commit(refreshed)
        return refreshed
