"""Shared test fixtures."""
import pytest
from unittest.mock import AsyncMock

from storefront_tool.gateway.client import CommerceGateway
from storefront_tool.gateway.schema import Address, Cart, Customer
from storefront_tool.session.crypto import SessionCrypto
from storefront_tool.session.store import SessionStore


def build_cart(cart_id="cart_1", items=None, **fields) -> Cart:
    """Cart from a raw backend-shaped payload."""
    return Cart.model_validate({"id": cart_id, "items": items or [], **fields})


def line_item(item_id="li_1", variant_id="variant_1", quantity=1, unit_price=500, **fields) -> dict:
    return {
        "id": item_id,
        "variant_id": variant_id,
        "title": fields.pop("title", "Cotton Kurta"),
        "quantity": quantity,
        "unit_price": unit_price,
        **fields,
    }


@pytest.fixture
def sample_address():
    return Address(
        first_name="Asha",
        last_name="Verma",
        address_1="12 MG Road",
        city="Bengaluru",
        province="Karnataka",
        postal_code="560001",
        country_code="in",
        phone="9876543210",
    )


@pytest.fixture
def sample_customer():
    return Customer(id="cus_1", email="asha.verma@example.com", first_name="Asha", last_name="Verma")


@pytest.fixture
def session(tmp_path):
    """Encrypted session store in a temporary directory."""
    return SessionStore(
        session_path=tmp_path / "session.enc",
        crypto=SessionCrypto(key_path=tmp_path / "session.key"),
    )


@pytest.fixture
def gateway():
    """Gateway double; every route is an AsyncMock."""
    return AsyncMock(spec=CommerceGateway)
