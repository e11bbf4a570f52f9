"""Tests for CartSession: guest persistence, login reconciliation and logout"""
import logging
from decimal import Decimal

import httpx
import pytest

from storecart.cart import CartSession, MemoryCartRepository
from storecart.db import RedisKeys
from storecart.errors import ConfigurationError, NetworkError, NotFoundError, PersistenceError

from factories import VENDOR_ID

LOCAL_KEY = RedisKeys.local_cart_key(VENDOR_ID)
USER_HEADERS = {"X-User-Id": "42"}


class FlakyTransport(httpx.AsyncBaseTransport):
    """Forwards to the reference app, failing chosen requests with 503."""

    def __init__(self, app, fail_get=False, fail_post_number=None):
        self.inner = httpx.ASGITransport(app=app)
        self.fail_get = fail_get
        self.fail_post_number = fail_post_number
        self.posts = 0

    async def handle_async_request(self, request):
        if request.method == "GET" and self.fail_get:
            return httpx.Response(503, json={"detail": "down"})
        if request.method == "POST":
            self.posts += 1
            if self.posts == self.fail_post_number:
                return httpx.Response(503, json={"detail": "down"})
        return await self.inner.handle_async_request(request)


def _session(repository, tax_rates, http_client):
    return CartSession(
        vendor_id=VENDOR_ID,
        guest_session_id="guest-1",
        repository=repository,
        tax_rates=tax_rates,
        http_client=http_client,
    )


def _flaky_client(transport):
    return httpx.AsyncClient(
        transport=transport,
        base_url="http://cart.test",
        headers={"X-Vendor-Id": str(VENDOR_ID)},
    )


def _quantities(cart):
    return [(line.product_id, line.variant, line.quantity) for line in cart.lines]


class TestGuestSession:
    """Guest carts live in memory and local storage."""

    @pytest.mark.asyncio
    async def test_mutations_persist_locally(self, repository, tax_rates, asgi_client, shirt, mug):
        session = _session(repository, tax_rates, asgi_client)

        await session.add(shirt, 3)
        await session.add(mug, 1)
        await session.update((123, "M/Red"), 2)

        reloaded = _session(repository, tax_rates, asgi_client)
        cart = reloaded.load()

        assert _quantities(cart) == [(123, "M/Red", 2), (456, None, 1)]
        assert cart == session.cart

    @pytest.mark.asyncio
    async def test_scenario_totals(self, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)

        await session.add(shirt, 3)

        assert session.summary() == {
            "subtotal": "89.97",
            "tax": "7.20",
            "total": "97.17",
            "itemCount": 3,
        }

    @pytest.mark.asyncio
    async def test_remove_absent_line(self, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 1)
        stored = repository.data[LOCAL_KEY]

        with pytest.raises(NotFoundError):
            await session.remove((999, None))

        assert repository.data[LOCAL_KEY] == stored

    @pytest.mark.asyncio
    async def test_update_to_zero_removes(self, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 1)

        cart = await session.update((123, "M/Red"), 0)

        assert cart.is_empty
        assert session.load().is_empty

    @pytest.mark.asyncio
    async def test_clear(self, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 1)

        cart = await session.clear()

        assert cart.total == Decimal("0.00")
        assert session.load().is_empty

    @pytest.mark.asyncio
    async def test_storage_failure_keeps_memory_cart(self, tax_rates, asgi_client, shirt, caplog):
        class ReadOnlyRepository(MemoryCartRepository):
            def set(self, key, value):
                raise PersistenceError("disk full")

        session = _session(ReadOnlyRepository(), tax_rates, asgi_client)

        with caplog.at_level(logging.ERROR):
            cart = await session.add(shirt, 2)

        assert cart.item_count == 2
        assert session.cart.item_count == 2
        assert "Failed to save local cart" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_reloads_local(self, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 1)
        repository.data.clear()

        cart = await session.refresh()

        assert cart.is_empty

    def test_vendor_without_tax_rate(self, repository, tax_rates):
        with pytest.raises(ConfigurationError):
            CartSession(vendor_id=8, guest_session_id="guest-1", repository=repository, tax_rates=tax_rates)

    def test_tax_rates_default_to_environment(self, repository):
        session = CartSession(vendor_id=VENDOR_ID, guest_session_id="guest-1", repository=repository)

        assert session.tax_rate == Decimal("0.08")


class TestLogin:
    """Login folds the guest cart into the server cart."""

    @pytest.mark.asyncio
    async def test_merge_with_existing_server_cart(self, app, repository, tax_rates, asgi_client, shirt, mug):
        app.state.cart_service.add("42", VENDOR_ID, 123, 3, "M/Red")
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 2)
        await session.add(mug, 1)

        cart = await session.login("42", headers=USER_HEADERS)

        assert session.is_authenticated
        assert _quantities(cart) == [(123, "M/Red", 5), (456, None, 1)]
        assert cart.subtotal == Decimal("162.45")
        assert cart.tax == Decimal("13.00")
        assert cart.total == Decimal("175.45")
        assert cart.owner_ref == "42"
        assert LOCAL_KEY not in repository.data
        assert app.state.cart_service.get_cart("42", VENDOR_ID) == cart

    @pytest.mark.asyncio
    async def test_empty_guest_cart_adopts_server(self, app, repository, tax_rates, asgi_client):
        app.state.cart_service.add("42", VENDOR_ID, 456, 2)
        session = _session(repository, tax_rates, asgi_client)

        cart = await session.login("42", headers=USER_HEADERS)

        assert _quantities(cart) == [(456, None, 2)]

    @pytest.mark.asyncio
    async def test_guest_lines_land_on_empty_server(self, app, repository, tax_rates, asgi_client, shirt, mug):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(mug, 1)
        await session.add(shirt, 2)

        cart = await session.login("42", headers=USER_HEADERS)

        assert _quantities(cart) == [(456, None, 1), (123, "M/Red", 2)]

    @pytest.mark.asyncio
    async def test_fetch_failure_stays_guest(self, app, repository, tax_rates, shirt):
        client = _flaky_client(FlakyTransport(app, fail_get=True))
        session = _session(repository, tax_rates, client)
        await session.add(shirt, 2)
        stored = repository.data[LOCAL_KEY]

        with pytest.raises(NetworkError):
            await session.login("42", headers=USER_HEADERS)

        assert not session.is_authenticated
        assert _quantities(session.cart) == [(123, "M/Red", 2)]
        assert session.cart.owner_ref == "guest-1"
        assert repository.data[LOCAL_KEY] == stored

    @pytest.mark.asyncio
    async def test_retry_after_partial_push_does_not_double_count(self, app, repository, tax_rates, shirt, mug):
        transport = FlakyTransport(app, fail_post_number=2)
        session = _session(repository, tax_rates, _flaky_client(transport))
        await session.add(shirt, 2)
        await session.add(mug, 1)

        with pytest.raises(NetworkError):
            await session.login("42", headers=USER_HEADERS)

        # The shirt line was accepted; only the mug is still pending locally
        assert not session.is_authenticated
        assert _quantities(session.cart) == [(456, None, 1)]
        assert _quantities(session.load()) == [(456, None, 1)]

        transport.fail_post_number = None
        cart = await session.login("42", headers=USER_HEADERS)

        assert _quantities(cart) == [(123, "M/Red", 2), (456, None, 1)]
        assert LOCAL_KEY not in repository.data

    @pytest.mark.asyncio
    async def test_login_twice_refreshes(self, app, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 1)
        await session.login("42", headers=USER_HEADERS)

        cart = await session.login("42", headers=USER_HEADERS)

        assert _quantities(cart) == [(123, "M/Red", 1)]


class TestAuthenticatedSession:
    """After login every mutation goes through the server."""

    @pytest.mark.asyncio
    async def test_mutations_hit_server(self, app, repository, tax_rates, asgi_client, shirt, mug):
        session = _session(repository, tax_rates, asgi_client)
        await session.login("42", headers=USER_HEADERS)

        await session.add(shirt, 2)
        await session.add(mug, 1)
        cart = await session.update((123, "M/Red"), 4)

        assert _quantities(cart) == [(123, "M/Red", 4), (456, None, 1)]
        assert app.state.cart_service.get_cart("42", VENDOR_ID) == cart
        assert LOCAL_KEY not in repository.data

        cart = await session.update((456, None), 0)
        assert _quantities(cart) == [(123, "M/Red", 4)]

        cart = await session.clear()
        assert cart.is_empty

    @pytest.mark.asyncio
    async def test_refresh_fetches_server(self, app, repository, tax_rates, asgi_client):
        session = _session(repository, tax_rates, asgi_client)
        await session.login("42", headers=USER_HEADERS)
        app.state.cart_service.add("42", VENDOR_ID, 456, 3)

        cart = await session.refresh()

        assert _quantities(cart) == [(456, None, 3)]

    @pytest.mark.asyncio
    async def test_logout(self, app, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 1)
        await session.login("42", headers=USER_HEADERS)

        cart = session.logout()

        assert not session.is_authenticated
        assert cart.is_empty
        assert cart.owner_ref == "guest-1"
        # Server cart is untouched
        assert _quantities(app.state.cart_service.get_cart("42", VENDOR_ID)) == [(123, "M/Red", 1)]


class TestLoginKeepsStoredGuestCart:
    """Login folds in the stored guest cart, not just what is in memory."""

    @pytest.mark.asyncio
    async def test_login_without_explicit_load(self, app, repository, tax_rates, asgi_client, shirt):
        earlier = _session(repository, tax_rates, asgi_client)
        await earlier.add(shirt, 2)

        session = _session(repository, tax_rates, asgi_client)
        cart = await session.login("42", headers=USER_HEADERS)

        assert _quantities(cart) == [(123, "M/Red", 2)]
        assert _quantities(app.state.cart_service.get_cart("42", VENDOR_ID)) == [(123, "M/Red", 2)]
        assert LOCAL_KEY not in repository.data

    @pytest.mark.asyncio
    async def test_first_add_keeps_stored_lines(self, repository, tax_rates, asgi_client, shirt, mug):
        earlier = _session(repository, tax_rates, asgi_client)
        await earlier.add(shirt, 2)

        session = _session(repository, tax_rates, asgi_client)
        cart = await session.add(mug, 1)

        assert _quantities(cart) == [(123, "M/Red", 2), (456, None, 1)]

    @pytest.mark.asyncio
    async def test_failed_local_delete_does_not_resurrect_lines(self, app, tax_rates, asgi_client, shirt):
        class NoDeleteRepository(MemoryCartRepository):
            def delete(self, key):
                raise PersistenceError("delete failed")

        session = _session(NoDeleteRepository(), tax_rates, asgi_client)
        await session.add(shirt, 2)
        await session.login("42", headers=USER_HEADERS)

        assert session.logout().is_empty

        cart = await session.login("42", headers=USER_HEADERS)
        assert _quantities(cart) == [(123, "M/Red", 2)]


class TestSwitchingUsers:
    @pytest.mark.asyncio
    async def test_login_as_other_user_does_not_merge_carts(self, app, repository, tax_rates, asgi_client, shirt):
        session = _session(repository, tax_rates, asgi_client)
        await session.add(shirt, 2)
        await session.login("42", headers=USER_HEADERS)

        cart = await session.login("43", headers={"X-User-Id": "43"})

        assert session.user_id == "43"
        assert cart.is_empty
        assert cart.owner_ref == "43"
        assert app.state.cart_service.get_cart("43", VENDOR_ID).is_empty
        assert _quantities(app.state.cart_service.get_cart("42", VENDOR_ID)) == [(123, "M/Red", 2)]
