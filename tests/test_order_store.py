"""Tests for OrderStore."""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from storefront.db import OrderItemRow, OrderRow, create_session_factory
from storefront.errors import InvalidStatusTransitionError, OrderNotFoundError, PersistenceError
from storefront.models import OrderFilter, OrderStatus, PaymentStatus
from storefront.order_store import OrderStore, generate_order_number
from storefront.pricing import quote

from .conftest import make_draft


def create_order(store: OrderStore, owner_id=None, **draft_overrides):
    draft = make_draft(**draft_overrides)
    return store.create(draft, owner_id, quote(draft.items, draft.shipping_option_id))


def count_rows(engine, model) -> int:
    with create_session_factory(engine)() as session:
        return session.scalar(select(func.count()).select_from(model))


class TestCreate:
    def test_create_persists_header_and_items(self, store):
        order = create_order(store, owner_id=1)

        assert order.id is not None
        assert order.owner_id == 1
        assert order.status is OrderStatus.PENDING
        assert order.payment_status is PaymentStatus.PENDING
        assert order.expected_delivery_date is None
        assert order.total == Decimal("73.85")
        assert len(order.items) == 2
        assert order.items[0].name == "Widget"
        assert order.items[0].line_total == Decimal("40.00")

    def test_guest_order_has_no_owner(self, store):
        order = create_order(store)

        assert order.owner_id is None
        assert order.is_guest

    def test_order_number_format(self):
        assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{6}", generate_order_number())

    def test_money_round_trips_as_decimal(self, store):
        order = store.get(create_order(store).id)

        assert isinstance(order.subtotal, Decimal)
        assert order.tax == Decimal("3.85")

    def test_failed_item_write_rolls_back_header(self, store, engine, monkeypatch):
        original = OrderStore._add_items

        def failing_add_items(self, session, order, draft):
            original(self, session, order, draft)
            raise OperationalError("INSERT INTO order_items", {}, Exception("disk I/O error"))

        monkeypatch.setattr(OrderStore, "_add_items", failing_add_items)

        with pytest.raises(PersistenceError):
            create_order(store)

        assert count_rows(engine, OrderRow) == 0
        assert count_rows(engine, OrderItemRow) == 0

    def test_store_usable_after_failed_write(self, store, monkeypatch):
        def failing_add_items(self, session, order, draft):
            raise OperationalError("INSERT INTO order_items", {}, Exception("locked"))

        with monkeypatch.context() as m:
            m.setattr(OrderStore, "_add_items", failing_add_items)
            with pytest.raises(PersistenceError):
                create_order(store)

        order = create_order(store)
        assert len(order.items) == 2

    def test_duplicate_idempotency_key_returns_existing(self, store, engine):
        first = create_order(store, idempotency_key="key-1")
        second = create_order(store, idempotency_key="key-1")

        assert second.id == first.id
        assert count_rows(engine, OrderRow) == 1

    def test_find_by_idempotency_key(self, store):
        order = create_order(store, idempotency_key="key-2")

        assert store.find_by_idempotency_key("key-2").id == order.id
        assert store.find_by_idempotency_key("missing") is None


class TestGet:
    def test_get_missing_raises(self, store):
        with pytest.raises(OrderNotFoundError):
            store.get(12345)

    def test_ping(self, store):
        assert store.ping() is True


class TestListOrders:
    def test_newest_first_with_pagination(self, store):
        ids = [create_order(store).id for _ in range(3)]

        page = store.list_orders(OrderFilter(page=1, limit=2))

        assert page.total == 3
        assert page.total_pages == 2
        assert [o.id for o in page.orders] == [ids[2], ids[1]]

        page2 = store.list_orders(OrderFilter(page=2, limit=2))
        assert [o.id for o in page2.orders] == [ids[0]]

    def test_filter_by_status(self, store):
        first = create_order(store)
        create_order(store)
        store.update_status(first.id, OrderStatus.PROCESSING)

        page = store.list_orders(OrderFilter(status="processing"))
        assert [o.id for o in page.orders] == [first.id]

        assert store.list_orders(OrderFilter(status="all")).total == 2

    def test_filter_by_customer(self, store):
        mine = create_order(store, owner_id=1)
        create_order(store, owner_id=2)
        create_order(store)

        page = store.list_orders(OrderFilter(customer_id=1))
        assert [o.id for o in page.orders] == [mine.id]

    def test_filter_by_date_range(self, store, engine):
        old = create_order(store)
        recent = create_order(store)
        with create_session_factory(engine)() as session:
            with session.begin():
                session.execute(
                    update(OrderRow)
                    .where(OrderRow.id == old.id)
                    .values(created_at=datetime(2020, 1, 15, 12, 0))
                )

        page = store.list_orders(OrderFilter(start_date=datetime(2021, 1, 1)))
        assert [o.id for o in page.orders] == [recent.id]

        page = store.list_orders(
            OrderFilter(start_date=datetime(2020, 1, 15), end_date=datetime(2020, 1, 15, 23, 59))
        )
        assert [o.id for o in page.orders] == [old.id]

    def test_empty_listing(self, store):
        page = store.list_orders(OrderFilter())

        assert page.orders == []
        assert page.to_dict()["pagination"] == {
            "total": 0,
            "page": 1,
            "limit": 10,
            "totalPages": 0,
        }


class TestUpdateStatus:
    def test_update_sets_status_and_date(self, store):
        order = create_order(store)
        delivery = date.today() + timedelta(days=3)

        updated = store.update_status(order.id, OrderStatus.OUT_FOR_DELIVERY, delivery)

        assert updated.status is OrderStatus.OUT_FOR_DELIVERY
        assert updated.expected_delivery_date == delivery
        assert updated.created_at == order.created_at
        assert updated.updated_at >= order.updated_at

    def test_same_status_changes_only_date(self, store):
        order = create_order(store)
        store.update_status(order.id, OrderStatus.PROCESSING, date(2026, 10, 20))

        updated = store.update_status(order.id, OrderStatus.PROCESSING, date(2026, 10, 22))

        assert updated.status is OrderStatus.PROCESSING
        assert updated.expected_delivery_date == date(2026, 10, 22)

    def test_date_kept_when_not_given(self, store):
        order = create_order(store)
        store.update_status(order.id, OrderStatus.PROCESSING, date(2026, 10, 20))

        updated = store.update_status(order.id, OrderStatus.OUT_FOR_DELIVERY)

        assert updated.expected_delivery_date == date(2026, 10, 20)

    def test_terminal_status_rejected(self, store):
        order = create_order(store)
        store.update_status(order.id, OrderStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransitionError):
            store.update_status(order.id, OrderStatus.PROCESSING)

        assert store.get(order.id).status is OrderStatus.CANCELLED

    def test_missing_order_raises(self, store):
        with pytest.raises(OrderNotFoundError):
            store.update_status(999, OrderStatus.PROCESSING)
