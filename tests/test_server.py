"""Tests for MCP server tool registration and dispatch."""
import json

import pytest
from unittest.mock import MagicMock

from storefront_tool.server import (
    list_tools,
    call_tool,
    _handle_preview_checkout,
    _handle_confirm_purchase,
    _handle_update_cart_item,
    _handle_saved_addresses,
    _pending_confirmations,
)
from storefront_tool.errors import AddressValidationError, CommerceAPIError
from storefront_tool.gateway.schema import Address, Customer, Order, ShippingOption
from storefront_tool.service import Storefront
import storefront_tool.server as server_module

from conftest import build_cart, line_item


EXPECTED_TOOLS = [
    "view_cart",
    "add_to_cart",
    "update_cart_item",
    "remove_cart_item",
    "login",
    "logout",
    "get_shipping_options",
    "preview_checkout",
    "confirm_purchase",
    "list_orders",
    "get_order",
    "request_return",
    "saved_addresses",
]

SHIPPING = {
    "first_name": "Asha",
    "last_name": "Verma",
    "address_1": "12 MG Road",
    "city": "Bengaluru",
    "province": "Karnataka",
    "postal_code": "560001",
    "country_code": "in",
    "phone": "9876543210",
}

STANDARD = ShippingOption(id="so_std", name="Standard delivery (4 days)", amount=65, metadata={"eta_days": 4})
EXPRESS = ShippingOption(id="so_exp", name="Express delivery", amount=150)


@pytest.fixture
def storefront():
    """A Storefront double installed as the server's singleton."""
    mock = MagicMock(spec=Storefront)
    mock.error = None
    mock.is_authenticated = True
    mock.cart = build_cart(
        "cart_1",
        items=[line_item(quantity=2)],
        currency_code="inr",
        shipping_address=SHIPPING,
    )
    server_module._storefront = mock
    yield mock
    server_module._storefront = None
    _pending_confirmations.clear()


@pytest.mark.asyncio
async def test_list_tools_returns_all_thirteen():
    tools = await list_tools()
    names = [t.name for t in tools]
    assert len(tools) == 13
    for expected in EXPECTED_TOOLS:
        assert expected in names, f"Missing tool: {expected}"


@pytest.mark.asyncio
async def test_all_tools_have_schemas():
    tools = await list_tools()
    for tool in tools:
        assert tool.description, f"{tool.name} missing description"
        assert tool.inputSchema, f"{tool.name} missing inputSchema"
        assert tool.inputSchema["type"] == "object"


@pytest.mark.asyncio
async def test_unknown_tool():
    result = await call_tool("nonexistent_tool", {})
    assert "Unknown tool" in result[0].text


@pytest.mark.asyncio
async def test_confirm_with_bad_code():
    result = await _handle_confirm_purchase({"confirmation_code": "BADCODE"})
    assert result["status"] == "rejected"


@pytest.mark.asyncio
async def test_view_cart(storefront):
    storefront.refresh_cart.return_value = storefront.cart

    result = await call_tool("view_cart", {})
    data = json.loads(result[0].text)

    assert data["cart_id"] == "cart_1"
    assert data["item_count"] == 2
    assert data["items"][0]["line_item_id"] == "li_1"
    assert data["totals"]["total"] == 1000


@pytest.mark.asyncio
async def test_confirmation_code_flow(storefront):
    """Test the preview -> confirm flow."""
    storefront.set_checkout_addresses.return_value = storefront.cart
    storefront.get_shipping_options.return_value = [STANDARD, EXPRESS]
    storefront.selected_shipping_option = STANDARD
    storefront.checkout.return_value = Order(id="order_1", display_id=1001, total=1065)

    # Preview
    preview = await _handle_preview_checkout({"shipping_address": SHIPPING})
    assert preview["status"] == "preview"
    code = preview["confirmation_code"]
    assert len(code) == 6
    assert preview["delivery"]["estimate"] == "Delivers in 4 days"
    assert preview["estimated_total"] == 1065
    assert "address_1" not in preview["shipping_to"]
    storefront.checkout.assert_not_called()

    # Confirm with correct code
    confirm = await _handle_confirm_purchase({"confirmation_code": code.lower()})
    assert confirm["status"] == "ordered"
    assert confirm["order"]["order_id"] == "order_1"
    assert code not in _pending_confirmations  # Code consumed
    storefront.checkout.assert_awaited_once_with(SHIPPING, None, "so_std", None)
    storefront.pay_online.assert_not_called()

    # Confirm again with same code should fail
    confirm2 = await _handle_confirm_purchase({"confirmation_code": code})
    assert confirm2["status"] == "rejected"


@pytest.mark.asyncio
async def test_online_confirmation_opens_payment(storefront):
    storefront.set_checkout_addresses.return_value = storefront.cart
    storefront.get_shipping_options.return_value = [STANDARD, EXPRESS]
    storefront.selected_shipping_option = EXPRESS
    storefront.pay_online.return_value = None

    preview = await _handle_preview_checkout({
        "shipping_address": SHIPPING,
        "payment_mode": "online",
        "shipping_option_id": "so_exp",
    })
    storefront.select_shipping_option.assert_called_once_with("so_exp")

    confirm = await _handle_confirm_purchase({"confirmation_code": preview["confirmation_code"]})

    assert confirm["status"] == "ordered"
    assert "order" not in confirm
    storefront.pay_online.assert_awaited_once_with(SHIPPING, None, "so_exp", None)


@pytest.mark.asyncio
async def test_preview_without_options_issues_no_code(storefront):
    storefront.set_checkout_addresses.return_value = storefront.cart
    storefront.get_shipping_options.return_value = []

    preview = await _handle_preview_checkout({"shipping_address": SHIPPING})

    assert preview["status"] == "no_options"
    assert not _pending_confirmations


@pytest.mark.asyncio
async def test_invalid_address_reports_fields(storefront):
    storefront.set_checkout_addresses.side_effect = AddressValidationError(
        {"postal_code": "Enter a valid 6-digit pincode"}
    )

    result = await call_tool("preview_checkout", {"shipping_address": {**SHIPPING, "postal_code": "12"}})
    data = json.loads(result[0].text)

    assert data["status"] == "invalid_address"
    assert data["errors"] == {"postal_code": "Enter a valid 6-digit pincode"}


@pytest.mark.asyncio
async def test_storefront_errors_become_messages(storefront):
    storefront.retrieve_order.side_effect = CommerceAPIError(404, "Order with id order_x was not found")

    result = await call_tool("get_order", {"order_id": "order_x"})
    data = json.loads(result[0].text)

    assert data == {"status": "error", "message": "This content isn't available."}


@pytest.mark.asyncio
async def test_update_rejects_zero_quantity(storefront):
    result = await _handle_update_cart_item({"line_item_id": "li_1", "quantity": 0})
    assert result["status"] == "error"
    storefront.update_quantity.assert_not_called()


@pytest.mark.asyncio
async def test_update_reports_recorded_error(storefront):
    storefront.error = "This item is out of stock."
    result = await _handle_update_cart_item({"line_item_id": "li_1", "quantity": 5})
    assert result["status"] == "error"
    assert result["message"] == "This item is out of stock."
    assert result["cart"]["item_count"] == 2


@pytest.mark.asyncio
async def test_list_orders_requires_login(storefront):
    storefront.is_authenticated = False
    result = await call_tool("list_orders", {})
    assert json.loads(result[0].text)["status"] == "error"
    storefront.fetch_orders.assert_not_called()


@pytest.mark.asyncio
async def test_saved_addresses_delete_requires_id(storefront):
    result = await _handle_saved_addresses({"action": "delete"})
    assert result["status"] == "error"
    storefront.delete_address.assert_not_called()


@pytest.mark.asyncio
async def test_saved_addresses_list_is_redacted(storefront):
    storefront.list_addresses.return_value = [Address(id="addr_1", **SHIPPING)]

    result = await _handle_saved_addresses({"action": "list"})

    assert result["addresses"][0]["id"] == "addr_1"
    assert result["addresses"][0]["city"] == "Bengaluru"
    assert "phone" not in result["addresses"][0]


@pytest.mark.asyncio
async def test_login_redacts_email_and_password(storefront, tmp_path, monkeypatch):
    monkeypatch.setattr(server_module, "_DEBUG_LOG_DIR", tmp_path)
    storefront.login.return_value = Customer(id="cus_1", email="asha.verma@example.com")

    result = await call_tool("login", {"email": "asha.verma@example.com", "password": "hunter2-secret"})
    data = json.loads(result[0].text)

    assert data["status"] == "logged_in"
    assert data["customer"] == "a***@example.com"
    log_text = "".join(p.read_text() for p in tmp_path.glob("session_*.log"))
    assert "TOOL: login" in log_text
    assert "hunter2-secret" not in log_text
