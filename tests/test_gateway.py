"""Tests for the commerce gateway: headers, error mapping, and response normalization."""
import json

import httpx
import pytest

from storefront_tool.errors import CommerceAPIError
from storefront_tool.gateway.client import CommerceGateway
from storefront_tool.gateway import normalize

BASE_URL = "https://store.example.com"


def make_gateway(handler) -> CommerceGateway:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return CommerceGateway(BASE_URL, "pk_test", client=client)


class TestRequests:
    @pytest.mark.asyncio
    async def test_publishable_key_and_bearer_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"cart": {"id": "cart_1", "items": []}})

        gw = make_gateway(handler)
        await gw.get_cart("cart_1")
        await gw.get_cart("cart_1", token="tok_1")

        assert seen[0].headers["x-publishable-api-key"] == "pk_test"
        assert "authorization" not in seen[0].headers
        assert seen[1].headers["authorization"] == "Bearer tok_1"
        assert seen[1].url.path == "/store/carts/cart_1"

    @pytest.mark.asyncio
    async def test_add_line_item_body(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"cart": {"id": "cart_1", "items": []}})

        gw = make_gateway(handler)
        await gw.add_line_item("cart_1", "variant_1", 2)
        assert bodies == [{"variant_id": "variant_1", "quantity": 2}]

    @pytest.mark.asyncio
    async def test_shipping_options_query(self):
        def handler(request):
            assert request.url.params["cart_id"] == "cart_1"
            return httpx.Response(200, json={"shipping_options": [{"id": "so_1", "name": "Standard"}]})

        options = await make_gateway(handler).list_shipping_options("cart_1")
        assert [o.id for o in options] == ["so_1"]


class TestErrors:
    @pytest.mark.asyncio
    async def test_non_success_raises_with_backend_message(self):
        def handler(request):
            return httpx.Response(404, json={"type": "not_found", "message": "Cart with id cart_x was not found"})

        with pytest.raises(CommerceAPIError) as exc:
            await make_gateway(handler).get_cart("cart_x")
        assert exc.value.status == 404
        assert exc.value.is_not_found
        assert exc.value.code == "not_found"
        assert "cart_x" in exc.value.message

    @pytest.mark.asyncio
    async def test_errors_array_message(self):
        def handler(request):
            return httpx.Response(400, json={"errors": [{"message": "quantity must be positive"}]})

        with pytest.raises(CommerceAPIError) as exc:
            await make_gateway(handler).update_line_item("cart_1", "li_1", 0)
        assert exc.value.message == "quantity must be positive"

    @pytest.mark.asyncio
    async def test_plain_text_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway upstream")

        with pytest.raises(CommerceAPIError) as exc:
            await make_gateway(handler).create_cart()
        assert exc.value.status == 502
        assert exc.value.message == "Bad Gateway upstream"

    @pytest.mark.asyncio
    async def test_transport_error_has_no_status(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CommerceAPIError) as exc:
            await make_gateway(handler).create_cart()
        assert exc.value.status is None

    @pytest.mark.asyncio
    async def test_complete_returning_cart_is_conflict(self):
        def handler(request):
            return httpx.Response(200, json={
                "type": "cart",
                "cart": {"id": "cart_1"},
                "error": {"message": "Payment not authorized"},
            })

        with pytest.raises(CommerceAPIError) as exc:
            await make_gateway(handler).complete_cart("cart_1")
        assert exc.value.status == 409
        assert exc.value.message == "Payment not authorized"

    @pytest.mark.asyncio
    async def test_login_without_token_raises(self):
        def handler(request):
            return httpx.Response(200, json={"ok": True})

        with pytest.raises(CommerceAPIError):
            await make_gateway(handler).login("a@example.com", "pw")


class TestRemoveLineItem:
    @pytest.mark.asyncio
    async def test_empty_body_means_refetch(self):
        def handler(request):
            return httpx.Response(204)

        assert await make_gateway(handler).remove_line_item("cart_1", "li_1") is None

    @pytest.mark.asyncio
    async def test_parent_wrapper(self):
        def handler(request):
            return httpx.Response(200, json={
                "id": "li_1",
                "object": "line-item",
                "deleted": True,
                "parent": {"id": "cart_1", "items": []},
            })

        cart = await make_gateway(handler).remove_line_item("cart_1", "li_1")
        assert cart.id == "cart_1"

    @pytest.mark.asyncio
    async def test_deletion_stub_without_cart(self):
        def handler(request):
            return httpx.Response(200, json={"id": "li_1", "object": "line-item", "deleted": True})

        assert await make_gateway(handler).remove_line_item("cart_1", "li_1") is None


class TestDeleteAddress:
    @pytest.mark.asyncio
    async def test_refetches_customer(self):
        calls = []

        def handler(request):
            calls.append((request.method, request.url.path))
            if request.method == "DELETE":
                return httpx.Response(200, json={"id": "addr_1", "object": "address", "deleted": True})
            return httpx.Response(200, json={"customer": {"id": "cus_1", "addresses": []}})

        customer = await make_gateway(handler).delete_address("tok_1", "addr_1")
        assert customer.id == "cus_1"
        assert calls == [
            ("DELETE", "/store/customers/me/addresses/addr_1"),
            ("GET", "/store/customers/me"),
        ]


class TestNormalize:
    def test_cart_bare_or_wrapped(self):
        assert normalize.normalize_cart({"id": "cart_1"}).id == "cart_1"
        assert normalize.normalize_cart({"cart": {"id": "cart_2"}}).id == "cart_2"

    def test_cart_region_and_variant_flattened(self):
        cart = normalize.normalize_cart({
            "id": "cart_1",
            "region": {"id": "reg_in"},
            "items": [{"id": "li_1", "quantity": 1, "variant": {"id": "variant_9"}}],
        })
        assert cart.region_id == "reg_in"
        assert cart.items[0].variant_id == "variant_9"

    def test_lists_under_data(self):
        orders = normalize.normalize_orders({"data": [{"id": "order_1"}]})
        assert [o.id for o in orders] == ["order_1"]

    def test_rate_quotes_type_keyed(self):
        quotes = normalize.normalize_rate_quotes({
            "rates": {"standard": {"amount": 65, "eta_days": 4}, "express": {"amount": 120}},
        })
        assert {q.type: q.amount for q in quotes} == {"standard": 65, "express": 120}

    def test_rate_quotes_list(self):
        quotes = normalize.normalize_rate_quotes([{"type": "standard", "amount": 65, "courier_name": "Delhivery"}])
        assert quotes[0].courier == "Delhivery"

    def test_shipping_option_calculated_price(self):
        options = normalize.normalize_shipping_options([
            {"id": "so_1", "calculated_price": {"calculated_amount": 80}, "metadata": None},
        ])
        assert options[0].amount == 80
        assert options[0].metadata == {}

    def test_payment_collection_session_aliases(self):
        collection = normalize.normalize_payment_collection({
            "payment_collection": {
                "id": "paycol_1",
                "payment_status": "authorized",
                "paymentSessions": [{"id": "ps_1", "status": "authorized", "data": {"order_id": "order_rp"}}],
            }
        })
        assert collection.status == "authorized"
        assert collection.primary_session.data["order_id"] == "order_rp"

    def test_extract_token_shapes(self):
        assert normalize.extract_token("tok") == "tok"
        assert normalize.extract_token({"token": "a"}) == "a"
        assert normalize.extract_token({"access_token": "b"}) == "b"
        assert normalize.extract_token({}) is None
