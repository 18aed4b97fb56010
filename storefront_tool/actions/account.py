"""Customer profile and address book."""
import logging
from typing import Optional

from ..errors import AddressValidationError, NotAuthenticatedError
from ..gateway.client import CommerceGateway
from ..gateway.schema import Address, Customer
from ..validators import normalize_address, validate_address
from .cart import CartOrchestrator

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, gateway: CommerceGateway, orchestrator: CartOrchestrator):
        self._gateway = gateway
        self._orchestrator = orchestrator

    def _require_token(self) -> str:
        token = self._orchestrator.token
        if not token:
            raise NotAuthenticatedError()
        return token

    @staticmethod
    def _checked(address: Address | dict) -> Address:
        address = normalize_address(address)
        errors = validate_address(address)
        if errors:
            raise AddressValidationError(errors, kind="saved")
        return address

    async def register(self, email: str, password: str, profile: Optional[dict] = None) -> Customer:
        """
        Create an identity and its customer record, then log in with it so
        the current guest cart is carried over.
        """
        token = await self._gateway.register(email, password)
        await self._gateway.create_customer(token, {"email": email, **(profile or {})})
        logger.info("Registered customer %s", email)
        return await self._orchestrator.login(email, password)

    async def refresh_profile(self) -> Customer:
        customer = await self._gateway.get_customer(self._require_token())
        self._orchestrator.set_customer(customer)
        return customer

    async def update_profile(self, body: dict) -> Customer:
        customer = await self._gateway.update_customer(self._require_token(), body)
        self._orchestrator.set_customer(customer)
        return customer

    async def list_addresses(self) -> list[Address]:
        return await self._gateway.list_addresses(self._require_token())

    async def add_address(self, address: Address | dict) -> Customer:
        token = self._require_token()
        customer = await self._gateway.add_address(token, self._checked(address))
        self._orchestrator.set_customer(customer)
        return customer

    async def update_address(self, address_id: str, address: Address | dict) -> Customer:
        token = self._require_token()
        customer = await self._gateway.update_address(token, address_id, self._checked(address))
        self._orchestrator.set_customer(customer)
        return customer

    async def delete_address(self, address_id: str) -> Customer:
        customer = await self._gateway.delete_address(self._require_token(), address_id)
        self._orchestrator.set_customer(customer)
        logger.info("Deleted address %s", address_id)
        return customer
