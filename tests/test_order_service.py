"""Tests for OrderService: submission, authorization and status changes."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from storefront.errors import (
    AccessDeniedError,
    AuthenticationError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from storefront.models import CartItem, Identity, OrderFilter, OrderStatus

from .conftest import make_draft, order_payload


class TestSubmitOrder:
    def test_customer_order_is_owned(self, service, customer):
        order = service.submit_order(make_draft(), customer)

        assert order.owner_id == customer.id
        assert order.status is OrderStatus.PENDING
        assert len(order.items) == 2

    def test_guest_order_is_unowned(self, service):
        order = service.submit_order(make_draft(), Identity.anonymous())

        assert order.owner_id is None

    def test_admin_order_is_unowned(self, service, admin):
        order = service.submit_order(make_draft(), admin)

        assert order.owner_id is None

    def test_totals_computed_server_side(self, service, customer):
        order = service.submit_order(make_draft(), customer)

        assert order.subtotal == Decimal("55.00")
        assert order.shipping == Decimal("15.00")
        assert order.tax == Decimal("3.85")
        assert order.total == Decimal("73.85")
        assert order.total == order.subtotal + order.shipping + order.tax

    def test_empty_items_rejected(self, service, customer, store):
        with pytest.raises(ValidationError) as exc_info:
            service.submit_order(make_draft(items=()), customer)

        assert "orderItems" in exc_info.value.errors
        assert store.list_orders(OrderFilter()).total == 0

    def test_unknown_shipping_option_rejected(self, service, customer):
        with pytest.raises(ValidationError):
            service.submit_order(make_draft(shipping_option_id="drone"), customer)

    def test_idempotent_resubmission(self, service, store, customer):
        first = service.submit_order(make_draft(idempotency_key="abc"), customer)
        second = service.submit_order(make_draft(idempotency_key="abc"), customer)

        assert second.id == first.id
        assert store.list_orders(OrderFilter()).total == 1

    def test_key_reused_by_other_customer_denied(self, service, store, customer, other_customer):
        service.submit_order(make_draft(idempotency_key="shared"), customer)

        with pytest.raises(AccessDeniedError):
            service.submit_order(make_draft(idempotency_key="shared"), other_customer)
        assert store.list_orders(OrderFilter()).total == 1

    def test_key_of_owned_order_reused_by_guest_denied(self, service, customer):
        service.submit_order(make_draft(idempotency_key="shared"), customer)

        with pytest.raises(AccessDeniedError):
            service.submit_order(make_draft(idempotency_key="shared"), Identity.anonymous())

    def test_key_won_by_concurrent_insert_checked(
        self, service, store, customer, other_customer, monkeypatch
    ):
        winner = service.submit_order(make_draft(idempotency_key="race"), customer)
        # The pre-check misses, so create() returns the row another request inserted.
        monkeypatch.setattr(store, "find_by_idempotency_key", lambda key: None)
        monkeypatch.setattr(store, "create", lambda draft, owner_id, quote: winner)

        with pytest.raises(AccessDeniedError):
            service.submit_order(make_draft(idempotency_key="race"), other_customer)

    def test_line_total_too_large_rejected(self, service, customer, store):
        items = (
            CartItem(product_id=1, name="Yacht", unit_price=Decimal("99999999.99"), quantity=2),
        )

        with pytest.raises(ValidationError) as exc_info:
            service.submit_order(make_draft(items=items), customer)

        assert any(field.startswith("orderItems") for field in exc_info.value.errors)
        assert store.list_orders(OrderFilter()).total == 0

    def test_order_total_too_large_rejected(self, service, customer, store):
        # Each line fits, but subtotal plus tax does not.
        items = (
            CartItem(product_id=1, name="Yacht", unit_price=Decimal("50000000.00"), quantity=1),
            CartItem(product_id=2, name="Jet", unit_price=Decimal("45000000.00"), quantity=1),
        )

        with pytest.raises(ValidationError) as exc_info:
            service.submit_order(make_draft(items=items), customer)

        assert "orderItems" in exc_info.value.errors
        assert store.list_orders(OrderFilter()).total == 0


class TestSubmitPayload:
    def test_valid_payload(self, service, customer):
        order = service.submit_payload(order_payload(), customer)

        assert order.contact.email == "jane@example.com"
        assert order.shipping_method == "standard"

    def test_tampered_client_totals_ignored(self, service, customer, caplog):
        payload = order_payload(subtotal="1.00", shipping="0.00", tax="0.00", total="1.00")

        with caplog.at_level(logging.DEBUG, logger="storefront.order_service"):
            order = service.submit_payload(payload, customer)

        assert order.total == Decimal("73.85")
        assert "Ignoring client totals" in caplog.text

    def test_tampered_unit_price_is_what_gets_charged(self, service, customer):
        payload = order_payload()
        payload["orderItems"][0]["unitPrice"] = "10.00"

        order = service.submit_payload(payload, customer)

        assert order.subtotal == Decimal("35.00")
        assert order.items[0].unit_price == Decimal("10.00")

    def test_malformed_fields_reported(self, service, customer):
        payload = order_payload(firstName="J", email="not-an-email")

        with pytest.raises(ValidationError) as exc_info:
            service.submit_payload(payload, customer)

        errors = exc_info.value.errors
        assert "orderData.firstName" in errors
        assert "orderData.email" in errors

    def test_unknown_field_rejected(self, service, customer):
        payload = order_payload(zipcode="12345")

        with pytest.raises(ValidationError):
            service.submit_payload(payload, customer)

    def test_billing_required_when_not_same(self, service, customer):
        payload = order_payload(sameAsBilling=False)
        del payload["orderData"]["billingAddress"]

        with pytest.raises(ValidationError):
            service.submit_payload(payload, customer)

    def test_separate_billing_address_stored(self, service, customer):
        payload = order_payload(
            sameAsBilling=False,
            billingAddress={
                "firstName": "Acme",
                "lastName": "Corp",
                "address": "1 Billing Plaza",
                "city": "Chicago",
                "state": "IL",
                "zipCode": "60601",
                "country": "US",
            },
        )

        order = service.submit_payload(payload, customer)

        assert order.billing_address.address == "1 Billing Plaza"
        assert order.shipping_address.address == "12 Main Street"

    def test_header_key_takes_precedence(self, service, customer):
        payload = order_payload(idempotencyKey="body-key")

        first = service.submit_payload(payload, customer, idempotency_key="header-key")
        second = service.submit_payload(order_payload(), customer, idempotency_key="header-key")

        assert second.id == first.id


class TestGetOrder:
    def test_owner_can_read(self, service, customer):
        order = service.submit_order(make_draft(), customer)

        assert service.get_order(order.id, customer).id == order.id

    def test_admin_can_read_any(self, service, customer, admin):
        order = service.submit_order(make_draft(), customer)

        assert service.get_order(order.id, admin).id == order.id

    def test_other_customer_denied(self, service, customer, other_customer):
        order = service.submit_order(make_draft(), customer)

        with pytest.raises(AccessDeniedError):
            service.get_order(order.id, other_customer)

    def test_anonymous_can_read_owned_order(self, service, customer):
        order = service.submit_order(make_draft(), customer)

        assert service.get_order(order.id, Identity.anonymous()).id == order.id

    def test_guest_order_readable_by_anyone(self, service, other_customer):
        order = service.submit_order(make_draft(), Identity.anonymous())

        assert service.get_order(order.id, Identity.anonymous()).id == order.id
        assert service.get_order(order.id, other_customer).id == order.id

    def test_missing_order(self, service, admin):
        with pytest.raises(OrderNotFoundError):
            service.get_order(404, admin)


class TestListOrders:
    def test_admin_lists_all(self, service, customer, other_customer, admin):
        service.submit_order(make_draft(), customer)
        service.submit_order(make_draft(), other_customer)

        page = service.list_orders(OrderFilter(), admin)

        assert page.total == 2

    def test_customer_denied(self, service, customer):
        with pytest.raises(AccessDeniedError):
            service.list_orders(OrderFilter(), customer)

    def test_anonymous_unauthenticated(self, service):
        with pytest.raises(AuthenticationError):
            service.list_orders(OrderFilter(), Identity.anonymous())

    def test_limit_bounds(self, service, admin):
        with pytest.raises(ValidationError) as exc_info:
            service.list_orders(OrderFilter(limit=500), admin)

        assert "limit" in exc_info.value.errors

        with pytest.raises(ValidationError):
            service.list_orders(OrderFilter(page=0), admin)

    def test_unknown_status_filter(self, service, admin):
        with pytest.raises(ValidationError):
            service.list_orders(OrderFilter(status="lost"), admin)

    def test_customer_orders_scoped_to_caller(self, service, customer, other_customer):
        mine = service.submit_order(make_draft(), customer)
        service.submit_order(make_draft(), other_customer)
        service.submit_order(make_draft(), Identity.anonymous())

        page = service.list_customer_orders(customer)

        assert [o.id for o in page.orders] == [mine.id]
        assert page.total == 1

    def test_customer_orders_requires_customer(self, service, admin):
        with pytest.raises(AuthenticationError):
            service.list_customer_orders(Identity.anonymous())
        with pytest.raises(AccessDeniedError):
            service.list_customer_orders(admin)


class TestUpdateStatus:
    def test_admin_advances_status(self, service, customer, admin):
        order = service.submit_order(make_draft(), customer)

        updated = service.update_status(
            order.id, "out_for_delivery", date(2026, 10, 21), identity=admin
        )

        assert updated.status is OrderStatus.OUT_FOR_DELIVERY
        assert updated.expected_delivery_date == date(2026, 10, 21)

    def test_customer_cannot_update(self, service, customer):
        order = service.submit_order(make_draft(), customer)

        with pytest.raises(AccessDeniedError):
            service.update_status(order.id, "delivered", identity=customer)

    def test_unknown_status(self, service, customer, admin):
        order = service.submit_order(make_draft(), customer)

        with pytest.raises(ValidationError):
            service.update_status(order.id, "teleported", identity=admin)

    def test_backwards_rejected(self, service, customer, admin):
        order = service.submit_order(make_draft(), customer)
        service.update_status(order.id, OrderStatus.DELIVERED, identity=admin)

        with pytest.raises(InvalidStatusTransitionError):
            service.update_status(order.id, "pending", identity=admin)

    def test_missing_order(self, service, admin):
        with pytest.raises(OrderNotFoundError):
            service.update_status(5150, "processing", identity=admin)
