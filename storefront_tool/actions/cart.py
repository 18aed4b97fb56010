"""
Cart orchestrator — owns the in-memory cart, acquires or creates it, and
moves a guest cart over to the customer on login.

Every cart-replacing write goes through ``commit`` so the persisted cart id
always tracks the snapshot.
"""
import asyncio
import logging
from typing import Optional

from ..errors import CommerceAPIError
from ..gateway.client import CommerceGateway
from ..gateway.schema import Cart, Customer
from ..session.store import SessionStore

logger = logging.getLogger(__name__)


class CartOrchestrator:
    """Single owner of the session's cart snapshot, token, and customer."""

    def __init__(self, gateway: CommerceGateway, session: SessionStore):
        self._gateway = gateway
        self._session = session
        self._cart: Optional[Cart] = None
        self._token: Optional[str] = session.get_token()
        self._customer: Optional[Customer] = None
        self._acquire_lock = asyncio.Lock()
        self._closed = False

    @property
    def cart(self) -> Optional[Cart]:
        return self._cart

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def customer(self) -> Optional[Customer]:
        return self._customer

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token)

    def commit(self, cart: Optional[Cart]) -> None:
        """Replace the snapshot and persist its id (or forget it for None)."""
        if self._closed:
            logger.debug("Session closed; dropping cart update")
            return
        self._cart = cart
        self._session.set_cart_id(cart.id if cart else None)

    def set_customer(self, customer: Optional[Customer]) -> None:
        if not self._closed:
            self._customer = customer

    def close(self) -> None:
        """Stop accepting state writes. In-flight calls are left to finish."""
        self._closed = True

    # ---- acquisition ----

    async def _try_transfer(self, cart: Cart) -> Cart:
        if not self._token:
            return cart
        try:
            return await self._gateway.transfer_cart(cart.id, self._token)
        except CommerceAPIError as e:
            logger.warning("Cart transfer failed for %s, keeping guest cart: %s", cart.id, e)
            return cart

    async def _acquire(self, candidate_id: Optional[str]) -> Cart:
        if candidate_id:
            try:
                cart = await self._gateway.get_cart(candidate_id, self._token)
            except CommerceAPIError as e:
                logger.info("Stored cart %s unusable (%s), creating a new one", candidate_id, e)
                self._session.set_cart_id(None)
            else:
                cart = await self._try_transfer(cart)
                self.commit(cart)
                return cart

        cart = await self._try_transfer(await self._gateway.create_cart(self._token))
        logger.info("Created cart %s", cart.id)
        self.commit(cart)
        return cart

    async def ensure_cart(self) -> Cart:
        """Return a valid cart, reusing memory, then storage, then creating one."""
        if self._cart:
            return self._cart
        async with self._acquire_lock:
            # Another caller may have acquired it while we waited
            if self._cart:
                return self._cart
            return await self._acquire(self._session.get_cart_id())

    async def create_fresh_cart(self) -> Cart:
        """Start over with a brand-new cart (after an order is placed)."""
        cart = await self._gateway.create_cart(self._token)
        logger.info("Started fresh cart %s", cart.id)
        self.commit(cart)
        return cart

    async def recreate_cart(self) -> Cart:
        """Drop a stale cart id and create (and claim, if logged in) a replacement."""
        self._session.set_cart_id(None)
        self._cart = None
        cart = await self._try_transfer(await self._gateway.create_cart(self._token))
        logger.info("Replaced stale cart with %s", cart.id)
        self.commit(cart)
        return cart

    async def refresh_cart(self) -> Optional[Cart]:
        """Re-fetch the current cart by id. Never creates a cart."""
        cart_id = self._cart.id if self._cart else self._session.get_cart_id()
        if not cart_id:
            return None
        cart = await self._gateway.get_cart(cart_id, self._token)
        self.commit(cart)
        return cart

    # ---- identity ----

    def set_token(self, token: Optional[str]) -> None:
        self._token = token
        self._session.set_token(token)

    async def bootstrap(self) -> Cart:
        """Restore the persisted session, then make sure a cart exists."""
        if self._token:
            try:
                self.set_customer(await self._gateway.get_customer(self._token))
            except CommerceAPIError as e:
                logger.info("Stored token rejected (%s), continuing as guest", e)
                self.set_token(None)
        return await self.ensure_cart()

    async def login(self, email: str, password: str) -> Customer:
        """Authenticate, then carry the current guest cart over to the customer."""
        token = await self._gateway.login(email, password)
        self.set_token(token)
        customer = await self._gateway.get_customer(token)
        self.set_customer(customer)
        logger.info("Logged in as customer %s", customer.id)

        candidate_id = self._cart.id if self._cart else self._session.get_cart_id()
        async with self._acquire_lock:
            await self._acquire(candidate_id)
        return customer

    def logout(self) -> None:
        self._token = None
        self._customer = None
        self._cart = None
        self._session.clear()
        logger.info("Logged out")
