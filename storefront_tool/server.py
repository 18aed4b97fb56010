"""
Storefront MCP Server.

Exposes cart, checkout, order and address-book tools over stdio so an
assistant can shop on the user's behalf. Checkout keeps a human in the loop:
preview_checkout returns a confirmation code the user must hand back to
confirm_purchase before anything is charged or ordered.
"""
import asyncio
import json
import logging
import os
import secrets
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from .actions.shipping import PaymentMode, format_delivery_estimate
from .config import DEFAULT_CONFIG_DIR, get_settings
from .errors import AddressValidationError, StorefrontError
from .gateway.schema import Address, Cart, Order, ShippingOption
from .output_sanitizer import redact_email, sanitize_output, user_facing_message
from .service import Storefront

logger = logging.getLogger(__name__)

# Debug log: every tool call and its response, one file per day
_DEBUG_LOG_DIR = Path(os.environ.get("STOREFRONT_DEBUG_DIR", str(DEFAULT_CONFIG_DIR / "debug")))

# Never written to the debug log
_SECRET_ARGS = {"password"}


def _debug_log(tool_name: str, args: dict, result: str) -> None:
    """Append a tool call entry to the debug log file."""
    try:
        _DEBUG_LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = _DEBUG_LOG_DIR / f"session_{datetime.now().strftime('%Y-%m-%d')}.log"
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        safe_args = {k: ("[REDACTED]" if k in _SECRET_ARGS else v) for k, v in args.items()}

        entry = (
            f"\n{'='*80}\n"
            f"[{timestamp}] TOOL: {tool_name}\n"
            f"ARGS: {json.dumps(safe_args, indent=2)}\n"
            f"RESPONSE:\n{result}\n"
        )

        with open(log_file, "a") as f:
            f.write(entry)
    except Exception as e:
        logger.debug("Debug log write failed: %s", e)


server = Server("storefront")

# Lazy-initialized singleton
_storefront: Storefront | None = None

# Confirmation gate state (in-memory, single-process)
_pending_confirmations: dict[str, dict] = {}

# Confirmation code TTL
_CONFIRMATION_TTL = 300  # 5 minutes


async def _get_storefront() -> Storefront:
    global _storefront
    if _storefront is None:
        storefront = Storefront(get_settings())
        try:
            await storefront.bootstrap()
        except Exception:
            await storefront.close()
            raise
        _storefront = storefront
    return _storefront


def _generate_confirmation_code() -> str:
    """Generate a 6-character alphanumeric confirmation code."""
    return secrets.token_hex(3).upper()


def _cleanup_expired_confirmations() -> None:
    """Remove expired confirmation codes."""
    now = time.time()
    expired = [k for k, v in _pending_confirmations.items() if now - v["created_at"] > _CONFIRMATION_TTL]
    for k in expired:
        del _pending_confirmations[k]


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_ADDRESS_SCHEMA = {
    "type": "object",
    "description": (
        "Address fields: first_name, last_name, address_1, address_2, city, province, "
        "postal_code, country_code (2 letters, e.g. 'in'), phone, company"
    ),
}

_PAYMENT_MODE_SCHEMA = {
    "type": "string",
    "enum": [m.value for m in PaymentMode],
    "description": "'cod' (pay on delivery) or 'online' (pay now through the payment window)",
    "default": "cod",
}


@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="view_cart",
            description="Show the current cart: line items (with their line_item_id), quantities, and totals.",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="add_to_cart",
            description="Add a product variant to the cart.",
            inputSchema={
                "type": "object",
                "properties": {
                    "variant_id": {
                        "type": "string",
                        "description": "Variant id of the product to add",
                    },
                    "quantity": {
                        "type": "integer",
                        "description": "Number of units to add",
                        "default": 1,
                    },
                },
                "required": ["variant_id"],
            },
        ),
        Tool(
            name="update_cart_item",
            description="Change the quantity of a line item already in the cart.",
            inputSchema={
                "type": "object",
                "properties": {
                    "line_item_id": {"type": "string", "description": "Line item id from view_cart"},
                    "quantity": {"type": "integer", "description": "New quantity (at least 1)"},
                },
                "required": ["line_item_id", "quantity"],
            },
        ),
        Tool(
            name="remove_cart_item",
            description="Remove a line item from the cart.",
            inputSchema={
                "type": "object",
                "properties": {
                    "line_item_id": {"type": "string", "description": "Line item id from view_cart"},
                },
                "required": ["line_item_id"],
            },
        ),
        Tool(
            name="login",
            description=(
                "Log in to the store account. The current cart is kept and moved to the account. "
                "The session token is stored encrypted and never shown."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "Account email"},
                    "password": {"type": "string", "description": "Account password"},
                },
                "required": ["email", "password"],
            },
        ),
        Tool(
            name="logout",
            description="Log out and forget the stored session and cart.",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="get_shipping_options",
            description=(
                "List delivery options for the cart with live carrier prices and delivery estimates. "
                "Pass shipping_address unless preview_checkout was already run."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "shipping_address": _ADDRESS_SCHEMA,
                    "payment_mode": _PAYMENT_MODE_SCHEMA,
                },
                "required": [],
            },
        ),
        Tool(
            name="preview_checkout",
            description=(
                "Prepare checkout: sets the addresses, checks the pincode is deliverable, and prices "
                "shipping. Returns a REDACTED summary and a confirmation code. Does NOT place the order. "
                "The user must provide the confirmation code to proceed."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "shipping_address": _ADDRESS_SCHEMA,
                    "billing_address": {
                        **_ADDRESS_SCHEMA,
                        "description": "Billing address (defaults to the shipping address)",
                    },
                    "payment_mode": _PAYMENT_MODE_SCHEMA,
                    "shipping_option_id": {
                        "type": "string",
                        "description": "Delivery option id (defaults to the first available option)",
                    },
                    "email": {
                        "type": "string",
                        "description": "Email for the order confirmation (defaults to the account email)",
                    },
                },
                "required": ["shipping_address"],
            },
        ),
        Tool(
            name="confirm_purchase",
            description=(
                "Place the order. REQUIRES the confirmation_code returned by preview_checkout. "
                "The user must explicitly provide this code to authorize the purchase. For online "
                "payment a payment window opens and this call waits until the payment is confirmed."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "confirmation_code": {
                        "type": "string",
                        "description": "The 6-character code from preview_checkout",
                    },
                },
                "required": ["confirmation_code"],
            },
        ),
        Tool(
            name="list_orders",
            description="List the logged-in customer's orders, newest first.",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="get_order",
            description="Show one order with its items, status, and totals.",
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string", "description": "Order id from list_orders"},
                },
                "required": ["order_id"],
            },
        ),
        Tool(
            name="request_return",
            description="Request a return for items of a delivered order.",
            inputSchema={
                "type": "object",
                "properties": {
                    "order_id": {"type": "string", "description": "Order id"},
                    "items": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "item_id": {"type": "string"},
                                "quantity": {"type": "integer", "default": 1},
                            },
                            "required": ["item_id"],
                        },
                        "description": "Line items to return",
                    },
                    "return_shipping_option_id": {
                        "type": "string",
                        "description": "Optional return shipping option",
                    },
                },
                "required": ["order_id", "items"],
            },
        ),
        Tool(
            name="saved_addresses",
            description="List, add, update, or delete addresses in the customer's address book.",
            inputSchema={
                "type": "object",
                "properties": {
                    "action": {
                        "type": "string",
                        "enum": ["list", "add", "update", "delete"],
                        "description": "What to do with the address book",
                    },
                    "address_id": {
                        "type": "string",
                        "description": "Saved address id (update and delete)",
                    },
                    "address": _ADDRESS_SCHEMA,
                },
                "required": ["action"],
            },
        ),
    ]


# ---------------------------------------------------------------------------
# Tool dispatch
# ---------------------------------------------------------------------------

@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    try:
        if name == "view_cart":
            result = await _handle_view_cart(arguments)
        elif name == "add_to_cart":
            result = await _handle_add_to_cart(arguments)
        elif name == "update_cart_item":
            result = await _handle_update_cart_item(arguments)
        elif name == "remove_cart_item":
            result = await _handle_remove_cart_item(arguments)
        elif name == "login":
            result = await _handle_login(arguments)
        elif name == "logout":
            result = await _handle_logout(arguments)
        elif name == "get_shipping_options":
            result = await _handle_get_shipping_options(arguments)
        elif name == "preview_checkout":
            result = await _handle_preview_checkout(arguments)
        elif name == "confirm_purchase":
            result = await _handle_confirm_purchase(arguments)
        elif name == "list_orders":
            result = await _handle_list_orders(arguments)
        elif name == "get_order":
            result = await _handle_get_order(arguments)
        elif name == "request_return":
            result = await _handle_request_return(arguments)
        elif name == "saved_addresses":
            result = await _handle_saved_addresses(arguments)
        else:
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

    except AddressValidationError as e:
        result = {"status": "invalid_address", "message": e.message, "errors": e.errors}
    except StorefrontError as e:
        logger.warning("Tool %s failed: %s", name, e)
        result = {"status": "error", "message": user_facing_message(e)}
    except Exception as e:
        logger.exception("Tool %s failed", name)
        error_text = f"Error: {str(e)}"
        _debug_log(name, arguments, error_text)
        return [TextContent(type="text", text=error_text)]

    if isinstance(result, str):
        text = result
    else:
        text = json.dumps(result, indent=2)
    sanitized = sanitize_output(text)

    _debug_log(name, arguments, sanitized)
    return [TextContent(type="text", text=sanitized)]


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def _cart_summary(cart: Optional[Cart]) -> dict:
    if cart is None:
        return {"cart_id": None, "items": [], "item_count": 0, "totals": {}}
    return {
        "cart_id": cart.id,
        "currency": cart.currency_code,
        "items": [
            {
                "line_item_id": item.id,
                "variant_id": item.variant_id,
                "title": item.title,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "line_total": item.line_total,
            }
            for item in cart.items
        ],
        "item_count": cart.item_count,
        "totals": cart.totals().to_dict(),
    }


def _option_summary(option: ShippingOption) -> dict:
    return {
        "id": option.id,
        "name": option.name,
        "amount": option.amount,
        "estimate": format_delivery_estimate(option),
        "courier": option.metadata.get("courier"),
    }


def _order_summary(order: Order) -> dict:
    return {
        "order_id": order.id,
        "display_id": order.display_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "fulfillment_status": order.fulfillment_status,
        "total": order.total,
        "currency": order.currency_code,
        "created_at": order.created_at,
        "items": [{"item_id": i.id, "title": i.title, "quantity": i.quantity} for i in order.items],
    }


def _redacted_address(address: Address) -> dict:
    """City-level view of an address, enough for the user to recognise it."""
    return {
        "name": address.full_name,
        "city": address.city,
        "province": address.province,
        "postal_code": address.postal_code,
        "country_code": address.country_code,
    }


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------

async def _handle_view_cart(args: dict) -> dict:
    storefront = await _get_storefront()
    cart = await storefront.refresh_cart()
    summary = _cart_summary(cart)
    if storefront.error:
        summary["warning"] = storefront.error
    return summary


async def _handle_add_to_cart(args: dict) -> dict:
    storefront = await _get_storefront()
    quantity = int(args.get("quantity", 1))
    cart = await storefront.add_to_cart(args["variant_id"], quantity)
    return {"status": "added", "cart": _cart_summary(cart)}


async def _handle_update_cart_item(args: dict) -> dict:
    storefront = await _get_storefront()
    quantity = int(args["quantity"])
    if quantity < 1:
        return {"status": "error", "message": "Quantity must be at least 1. Use remove_cart_item to remove."}
    await storefront.update_quantity(args["line_item_id"], quantity)
    if storefront.error:
        return {"status": "error", "message": storefront.error, "cart": _cart_summary(storefront.cart)}
    return {"status": "updated", "cart": _cart_summary(storefront.cart)}


async def _handle_remove_cart_item(args: dict) -> dict:
    storefront = await _get_storefront()
    await storefront.remove_item(args["line_item_id"])
    if storefront.error:
        return {"status": "error", "message": storefront.error, "cart": _cart_summary(storefront.cart)}
    return {"status": "removed", "cart": _cart_summary(storefront.cart)}


async def _handle_login(args: dict) -> dict:
    storefront = await _get_storefront()
    customer = await storefront.login(args["email"], args["password"])
    _pending_confirmations.clear()
    return {
        "status": "logged_in",
        "customer": redact_email(customer.email or args["email"]),
        "cart": _cart_summary(storefront.cart),
    }


async def _handle_logout(args: dict) -> dict:
    storefront = await _get_storefront()
    storefront.logout()
    _pending_confirmations.clear()
    return {"status": "logged_out"}


async def _handle_get_shipping_options(args: dict) -> dict:
    storefront = await _get_storefront()
    if args.get("shipping_address"):
        await storefront.set_checkout_addresses(args["shipping_address"])
    options = await storefront.get_shipping_options(PaymentMode(args.get("payment_mode", "cod")))
    if storefront.error:
        return {"status": "error", "message": storefront.error}
    if not options:
        return {"status": "no_options", "message": "No delivery options are available for this address."}
    return {"status": "ok", "options": [_option_summary(o) for o in options]}


async def _handle_preview_checkout(args: dict) -> dict:
    """Set addresses, price shipping, and issue a confirmation code."""
    storefront = await _get_storefront()
    payment_mode = PaymentMode(args.get("payment_mode", "cod"))
    email = args.get("email")

    cart = await storefront.set_checkout_addresses(args["shipping_address"], args.get("billing_address"), email)
    options = await storefront.get_shipping_options(payment_mode)
    if storefront.error:
        return {"status": "error", "message": storefront.error}
    if not options:
        return {"status": "no_options", "message": "No delivery options are available for this address."}

    if args.get("shipping_option_id"):
        storefront.select_shipping_option(args["shipping_option_id"])
    selected = storefront.selected_shipping_option

    _cleanup_expired_confirmations()

    code = _generate_confirmation_code()
    _pending_confirmations[code] = {
        "created_at": time.time(),
        "shipping_address": args["shipping_address"],
        "billing_address": args.get("billing_address"),
        "payment_mode": payment_mode.value,
        "shipping_option_id": selected.id,
        "email": email,
    }

    cart = storefront.cart or cart
    totals = cart.totals()
    return {
        "status": "preview",
        "confirmation_code": code,
        "message": (
            f"Review your order details below. To place the order, "
            f"provide the confirmation code: {code}"
        ),
        "shipping_to": _redacted_address(cart.shipping_address or Address.model_validate(args["shipping_address"])),
        "payment_mode": payment_mode.value,
        "delivery": _option_summary(selected),
        "other_delivery_options": [_option_summary(o) for o in options if o.id != selected.id],
        "items": _cart_summary(cart)["items"],
        "estimated_total": totals.total + (selected.amount or 0) - totals.shipping,
        "currency": cart.currency_code,
    }


async def _handle_confirm_purchase(args: dict) -> dict:
    """Place the order if the confirmation code is valid."""
    code = args["confirmation_code"].strip().upper()

    _cleanup_expired_confirmations()

    if code not in _pending_confirmations:
        return {
            "status": "rejected",
            "message": "Invalid or expired confirmation code. Run preview_checkout again.",
        }

    confirmation = _pending_confirmations.pop(code)
    storefront = await _get_storefront()
    checkout_args = (
        confirmation["shipping_address"],
        confirmation["billing_address"],
        confirmation["shipping_option_id"],
        confirmation["email"],
    )

    if confirmation["payment_mode"] == PaymentMode.ONLINE.value:
        order = await storefront.pay_online(*checkout_args)
    else:
        order = await storefront.checkout(*checkout_args)

    result = {"status": "ordered", "message": "Your order has been placed."}
    if order is not None:
        result["order"] = _order_summary(order)
    return result


async def _handle_list_orders(args: dict) -> dict:
    storefront = await _get_storefront()
    if not storefront.is_authenticated:
        return {"status": "error", "message": "Log in to see your orders."}
    orders = await storefront.fetch_orders()
    if storefront.error:
        return {"status": "error", "message": storefront.error}
    return {"status": "ok", "orders": [_order_summary(o) for o in orders]}


async def _handle_get_order(args: dict) -> dict:
    storefront = await _get_storefront()
    order = await storefront.retrieve_order(args["order_id"])
    return {"status": "ok", "order": _order_summary(order)}


async def _handle_request_return(args: dict) -> dict:
    storefront = await _get_storefront()
    result = await storefront.create_return(
        args["order_id"], args["items"], args.get("return_shipping_option_id")
    )
    return {"status": "return_requested", "return_id": result.get("id"), "order_id": args["order_id"]}


async def _handle_saved_addresses(args: dict) -> dict:
    """List or edit the customer's address book."""
    storefront = await _get_storefront()
    action = args["action"]

    if action == "list":
        addresses = await storefront.list_addresses()
        return {"status": "ok", "addresses": [{"id": a.id, **_redacted_address(a)} for a in addresses]}

    if action == "add":
        if not args.get("address"):
            return {"status": "error", "message": "action='add' requires 'address'."}
        customer = await storefront.add_address(args["address"])
    elif action in ("update", "delete"):
        if not args.get("address_id"):
            return {"status": "error", "message": f"action='{action}' requires 'address_id'."}
        if action == "update":
            if not args.get("address"):
                return {"status": "error", "message": "action='update' requires 'address'."}
            customer = await storefront.update_address(args["address_id"], args["address"])
        else:
            customer = await storefront.delete_address(args["address_id"])
    else:
        return {"status": "error", "message": f"Unknown action: {action}"}

    return {
        "status": "saved" if action != "delete" else "deleted",
        "addresses": [{"id": a.id, **_redacted_address(a)} for a in customer.addresses],
    }


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------

async def main():
    """Run the MCP server over stdio."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger.info("Storefront MCP server starting...")

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        if _storefront:
            await _storefront.close()


def run():
    """Sync entry point for console_scripts."""
    asyncio.run(main())
