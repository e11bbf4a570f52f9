"""Tests for the server-side cart service"""
import threading
import time

import pytest

from storecart.cart import MemoryCartRepository
from storecart.cart.backend import ServerCartService
from storecart.errors import NotFoundError

from factories import VENDOR_ID


class SlowRepository(MemoryCartRepository):
    """Widens the window between reading and writing a cart."""

    def get(self, key):
        value = super().get(key)
        time.sleep(0.05)
        return value


@pytest.fixture
def service(catalog, tax_rates):
    return ServerCartService(SlowRepository(), catalog, tax_rates)


def _run_concurrently(*calls):
    threads = [threading.Thread(target=call) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


class TestServerCartService:
    """Tests for ServerCartService"""

    def test_concurrent_adds_keep_both_lines(self, service):
        _run_concurrently(
            lambda: service.add("42", VENDOR_ID, 123, 1, "M/Red"),
            lambda: service.add("42", VENDOR_ID, 456, 1),
        )

        cart = service.get_cart("42", VENDOR_ID)
        assert sorted(line.product_id for line in cart.lines) == [123, 456]

    def test_concurrent_adds_of_same_key_sum(self, service):
        _run_concurrently(*[lambda: service.add("42", VENDOR_ID, 456, 1) for _ in range(4)])

        assert service.get_cart("42", VENDOR_ID).lines[0].quantity == 4

    def test_concurrent_update_and_add(self, service):
        item_id = service.add("42", VENDOR_ID, 123, 1, "M/Red").lines[0].id

        _run_concurrently(
            lambda: service.update("42", VENDOR_ID, item_id, 5),
            lambda: service.add("42", VENDOR_ID, 456, 2),
        )

        cart = service.get_cart("42", VENDOR_ID)
        assert {line.product_id: line.quantity for line in cart.lines} == {123: 5, 456: 2}

    def test_owners_are_separate(self, service):
        service.add("42", VENDOR_ID, 123, 1, "M/Red")
        service.add("sess-1", VENDOR_ID, 456, 3)

        assert [line.product_id for line in service.get_cart("42", VENDOR_ID).lines] == [123]
        assert [line.product_id for line in service.get_cart("sess-1", VENDOR_ID).lines] == [456]

    def test_unknown_item(self, service):
        with pytest.raises(NotFoundError):
            service.remove("42", VENDOR_ID, "missing")
