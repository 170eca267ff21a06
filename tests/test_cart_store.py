"""Tests for CartStore."""

import json
import logging
from decimal import Decimal

import pytest

from storefront.cart_store import CartStore
from storefront.models import CartItem


def widget(quantity: int = 1) -> CartItem:
    return CartItem(product_id=1, name="Widget", unit_price=Decimal("20.00"), quantity=quantity)


def gadget(quantity: int = 1) -> CartItem:
    return CartItem(product_id=2, name="Gadget", unit_price=Decimal("15.00"), quantity=quantity)


class TestCartStore:
    """Tests for CartStore class."""

    def test_new_cart_is_empty(self):
        cart = CartStore()

        assert cart.is_empty()
        assert cart.items == []
        assert cart.subtotal == Decimal("0.00")
        assert cart.item_count == 0

    def test_add_item(self):
        cart = CartStore()
        cart.add_item(widget(2))

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 2
        assert cart.subtotal == Decimal("40.00")

    def test_add_existing_product_increments_quantity(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.add_item(widget(2))

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    def test_add_item_with_zero_quantity_is_ignored(self):
        cart = CartStore()
        cart.add_item(widget(0))

        assert cart.is_empty()

    def test_update_quantity(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.update_quantity(1, 5)

        assert cart.items[0].quantity == 5
        assert cart.item_count == 5

    def test_update_quantity_zero_removes(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.add_item(gadget(1))
        cart.update_quantity(1, 0)

        assert [i.product_id for i in cart.items] == [2]

    def test_update_unknown_product_is_noop(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.update_quantity(42, 3)

        assert cart.item_count == 1

    def test_remove_item(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.remove_item(1)
        cart.remove_item(1)

        assert cart.is_empty()

    def test_clear(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.add_item(gadget(3))
        cart.clear()

        assert cart.is_empty()
        assert cart.subtotal == Decimal("0.00")

    def test_subtotal_and_item_count(self):
        cart = CartStore()
        cart.add_item(widget(2))
        cart.add_item(gadget(1))

        assert cart.subtotal == Decimal("55.00")
        assert cart.item_count == 3

    def test_snapshot_is_detached(self):
        cart = CartStore()
        cart.add_item(widget(1))
        snapshot = cart.snapshot()
        cart.update_quantity(1, 4)

        assert isinstance(snapshot, tuple)
        assert snapshot[0].quantity == 1

    def test_items_returns_copy_of_list(self):
        cart = CartStore()
        cart.add_item(widget(1))
        cart.items.clear()

        assert len(cart.items) == 1


class TestCartPersistence:
    """Tests for the JSON file backing."""

    def test_cart_survives_reload(self, temp_dir):
        path = temp_dir / "cart.json"
        cart = CartStore(path)
        cart.add_item(widget(2))
        cart.add_item(gadget(1))

        reloaded = CartStore(path)
        assert reloaded.item_count == 3
        assert reloaded.subtotal == Decimal("55.00")

    def test_file_format(self, temp_dir):
        path = temp_dir / "cart.json"
        cart = CartStore(path)
        cart.add_item(widget(2))

        data = json.loads(path.read_text())
        assert data["schema_version"] == 1
        assert data["items"][0]["product_id"] == 1
        assert data["items"][0]["unit_price"] == "20.00"
        assert data["items"][0]["quantity"] == 2

    def test_creates_parent_directory(self, temp_dir):
        path = temp_dir / "nested" / "dir" / "cart.json"
        CartStore(path).add_item(widget(1))

        assert path.exists()

    def test_no_temp_files_left_behind(self, temp_dir):
        path = temp_dir / "cart.json"
        cart = CartStore(path)
        cart.add_item(widget(1))
        cart.clear()

        assert [p.name for p in temp_dir.iterdir()] == ["cart.json"]

    def test_corrupt_file_starts_empty_and_logs(self, temp_dir, caplog):
        path = temp_dir / "cart.json"
        path.write_text("{not json")

        with caplog.at_level(logging.WARNING, logger="storefront.cart_store"):
            cart = CartStore(path)

        assert cart.is_empty()
        assert "Failed to parse cart" in caplog.text

    @pytest.mark.parametrize(
        "content",
        ["[]", '"cart"', "null", "42", json.dumps({"schema_version": 1, "items": ["x"]})],
    )
    def test_json_that_is_not_a_cart_starts_empty(self, temp_dir, caplog, content):
        path = temp_dir / "cart.json"
        path.write_text(content)

        with caplog.at_level(logging.WARNING, logger="storefront.cart_store"):
            cart = CartStore(path)

        assert cart.is_empty()
        assert "Failed to parse cart" in caplog.text

    def test_wrong_schema_version_starts_empty(self, temp_dir):
        path = temp_dir / "cart.json"
        path.write_text(json.dumps({"schema_version": 99, "items": []}))

        assert CartStore(path).is_empty()

    def test_corrupt_file_is_replaced_on_next_write(self, temp_dir):
        path = temp_dir / "cart.json"
        path.write_text("garbage")
        cart = CartStore(path)
        cart.add_item(widget(1))

        assert CartStore(path).item_count == 1
