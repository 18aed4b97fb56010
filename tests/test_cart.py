"""Tests for cart acquisition, persistence, and guest-to-customer transfer."""
import asyncio

import pytest

from storefront_tool.actions.cart import CartOrchestrator
from storefront_tool.errors import CommerceAPIError

from conftest import build_cart, line_item


class TestEnsureCart:
    @pytest.mark.asyncio
    async def test_creates_and_persists_when_nothing_stored(self, gateway, session):
        gateway.create_cart.return_value = build_cart("cart_new")
        orchestrator = CartOrchestrator(gateway, session)

        cart = await orchestrator.ensure_cart()

        assert cart.id == "cart_new"
        assert session.get_cart_id() == "cart_new"
        gateway.get_cart.assert_not_called()
        gateway.transfer_cart.assert_not_called()

    @pytest.mark.asyncio
    async def test_reuses_persisted_cart(self, gateway, session):
        session.set_cart_id("cart_stored")
        gateway.get_cart.return_value = build_cart("cart_stored")
        orchestrator = CartOrchestrator(gateway, session)

        cart = await orchestrator.ensure_cart()

        assert cart.id == "cart_stored"
        gateway.create_cart.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_persisted_cart_is_replaced(self, gateway, session):
        session.set_cart_id("cart_gone")
        gateway.get_cart.side_effect = CommerceAPIError(404, "Cart not found")
        gateway.create_cart.return_value = build_cart("cart_new")
        orchestrator = CartOrchestrator(gateway, session)

        cart = await orchestrator.ensure_cart()

        assert cart.id == "cart_new"
        assert session.get_cart_id() == "cart_new"

    @pytest.mark.asyncio
    async def test_idempotent(self, gateway, session):
        gateway.create_cart.return_value = build_cart("cart_new")
        orchestrator = CartOrchestrator(gateway, session)

        first = await orchestrator.ensure_cart()
        second = await orchestrator.ensure_cart()

        assert first.id == second.id
        assert gateway.create_cart.await_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_create_one_cart(self, gateway, session):
        async def slow_create(token=None):
            await asyncio.sleep(0)
            return build_cart("cart_new")

        gateway.create_cart.side_effect = slow_create
        orchestrator = CartOrchestrator(gateway, session)

        carts = await asyncio.gather(*(orchestrator.ensure_cart() for _ in range(5)))

        assert {c.id for c in carts} == {"cart_new"}
        assert gateway.create_cart.await_count == 1

    @pytest.mark.asyncio
    async def test_authenticated_transfer_failure_keeps_cart(self, gateway, session):
        session.set_token("tok_1")
        session.set_cart_id("cart_guest")
        gateway.get_cart.return_value = build_cart("cart_guest")
        gateway.transfer_cart.side_effect = CommerceAPIError(400, "Cannot transfer")
        orchestrator = CartOrchestrator(gateway, session)

        cart = await orchestrator.ensure_cart()

        assert cart.id == "cart_guest"
        gateway.transfer_cart.assert_awaited_once_with("cart_guest", "tok_1")


class TestLogin:
    @pytest.mark.asyncio
    async def test_guest_cart_transferred_on_login(self, gateway, session, sample_customer):
        gateway.create_cart.return_value = build_cart("cart_guest")
        orchestrator = CartOrchestrator(gateway, session)
        guest = await orchestrator.ensure_cart()
        assert guest.id == "cart_guest"

        transferred = build_cart("cart_guest", [line_item()], customer_id="cus_1")
        gateway.login.return_value = "tok_1"
        gateway.get_customer.return_value = sample_customer
        gateway.get_cart.return_value = build_cart("cart_guest", [line_item()])
        gateway.transfer_cart.return_value = transferred

        customer = await orchestrator.login("asha.verma@example.com", "secret")

        assert customer.id == "cus_1"
        assert orchestrator.cart.id == "cart_guest"
        assert orchestrator.cart.customer_id == "cus_1"
        assert [i.id for i in orchestrator.cart.items] == ["li_1"]
        assert session.get_token() == "tok_1"
        assert session.get_cart_id() == "cart_guest"
        gateway.create_cart.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_guest_cart_kept_when_transfer_fails(self, gateway, session, sample_customer):
        gateway.create_cart.return_value = build_cart("cart_guest")
        orchestrator = CartOrchestrator(gateway, session)
        await orchestrator.ensure_cart()

        gateway.login.return_value = "tok_1"
        gateway.get_customer.return_value = sample_customer
        gateway.get_cart.return_value = build_cart("cart_guest", [line_item()])
        gateway.transfer_cart.side_effect = CommerceAPIError(500, "boom")

        await orchestrator.login("asha.verma@example.com", "secret")

        assert orchestrator.cart.id == "cart_guest"
        assert [i.id for i in orchestrator.cart.items] == ["li_1"]
        assert orchestrator.is_authenticated
        gateway.create_cart.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_login_leaves_guest_state(self, gateway, session):
        gateway.login.side_effect = CommerceAPIError(401, "Invalid credentials")
        orchestrator = CartOrchestrator(gateway, session)

        with pytest.raises(CommerceAPIError):
            await orchestrator.login("asha.verma@example.com", "wrong")

        assert not orchestrator.is_authenticated
        assert session.get_token() is None

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, gateway, session):
        session.set_token("tok_1")
        gateway.create_cart.return_value = build_cart("cart_1")
        gateway.transfer_cart.return_value = build_cart("cart_1", customer_id="cus_1")
        orchestrator = CartOrchestrator(gateway, session)
        await orchestrator.ensure_cart()

        orchestrator.logout()

        assert orchestrator.cart is None
        assert not orchestrator.is_authenticated
        assert session.get_token() is None
        assert session.get_cart_id() is None


class TestBootstrap:
    @pytest.mark.asyncio
    async def test_invalid_stored_token_is_cleared(self, gateway, session):
        session.set_token("tok_expired")
        gateway.get_customer.side_effect = CommerceAPIError(401, "Unauthorized")
        gateway.create_cart.return_value = build_cart("cart_new")
        orchestrator = CartOrchestrator(gateway, session)

        cart = await orchestrator.bootstrap()

        assert cart.id == "cart_new"
        assert not orchestrator.is_authenticated
        assert session.get_token() is None
        gateway.create_cart.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_valid_token_loads_customer(self, gateway, session, sample_customer):
        session.set_token("tok_1")
        session.set_cart_id("cart_1")
        gateway.get_customer.return_value = sample_customer
        gateway.get_cart.return_value = build_cart("cart_1")
        gateway.transfer_cart.return_value = build_cart("cart_1", customer_id="cus_1")
        orchestrator = CartOrchestrator(gateway, session)

        await orchestrator.bootstrap()

        assert orchestrator.customer.id == "cus_1"
        assert orchestrator.cart.customer_id == "cus_1"


class TestRefreshAndCommit:
    @pytest.mark.asyncio
    async def test_refresh_without_cart_never_creates(self, gateway, session):
        orchestrator = CartOrchestrator(gateway, session)
        assert await orchestrator.refresh_cart() is None
        gateway.create_cart.assert_not_called()

    @pytest.mark.asyncio
    async def test_recreate_drops_stale_id(self, gateway, session):
        session.set_cart_id("cart_old")
        gateway.create_cart.return_value = build_cart("cart_new")
        orchestrator = CartOrchestrator(gateway, session)

        cart = await orchestrator.recreate_cart()

        assert cart.id == "cart_new"
        assert session.get_cart_id() == "cart_new"

    def test_commit_ignored_after_close(self, gateway, session):
        orchestrator = CartOrchestrator(gateway, session)
        orchestrator.commit(build_cart("cart_1"))
        orchestrator.close()
        orchestrator.commit(build_cart("cart_2"))
        assert orchestrator.cart.id == "cart_1"
        assert session.get_cart_id() == "cart_1"
