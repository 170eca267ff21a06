"""Pytest fixtures for storefront tests."""

import tempfile
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from storefront.api import create_app
from storefront.config import Settings
from storefront.db import create_db_engine, create_session_factory, init_db
from storefront.identity import TokenRegistry
from storefront.models import (
    Address,
    BillingAddress,
    CartItem,
    ContactInfo,
    Identity,
    OrderDraft,
    PaymentMethod,
)
from storefront.order_service import OrderService
from storefront.order_store import OrderStore

CUSTOMER_TOKEN = "customer-token"
OTHER_CUSTOMER_TOKEN = "other-customer-token"
ADMIN_TOKEN = "admin-token"


def sample_items() -> tuple[CartItem, ...]:
    """Two products: 2 x 20.00 and 1 x 15.00 (subtotal 55.00)."""
    return (
        CartItem(product_id=1, name="Widget", unit_price=Decimal("20.00"), quantity=2),
        CartItem(product_id=2, name="Gadget", unit_price=Decimal("15.00"), quantity=1),
    )


def make_draft(**overrides) -> OrderDraft:
    """Build a valid OrderDraft; keyword arguments replace fields."""
    contact = ContactInfo("Jane", "Doe", "jane@example.com", "555-0100")
    shipping = Address("12 Main Street", "Springfield", "IL", "62701", "US")
    fields = dict(
        contact=contact,
        shipping_address=shipping,
        billing_address=BillingAddress.from_shipping(contact, shipping),
        shipping_option_id="standard",
        payment_method=PaymentMethod.CREDIT_CARD,
        items=sample_items(),
    )
    fields.update(overrides)
    return OrderDraft(**fields)


def order_payload(**order_data_overrides) -> dict:
    """A valid `{orderData, orderItems}` request body."""
    payload = make_draft().to_payload()
    payload["orderData"].update(order_data_overrides)
    return payload


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir):
    return Settings.for_directory(temp_dir)


@pytest.fixture
def engine():
    """In-memory SQLite database with the order tables."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return OrderStore(create_session_factory(engine))


@pytest.fixture
def service(store):
    return OrderService(store)


@pytest.fixture
def customer():
    return Identity.customer(1, "jane@example.com")


@pytest.fixture
def other_customer():
    return Identity.customer(2, "sam@example.com")


@pytest.fixture
def admin():
    return Identity.admin(99, "admin@example.com")


@pytest.fixture
def tokens(customer, other_customer, admin):
    return TokenRegistry(
        {
            CUSTOMER_TOKEN: customer,
            OTHER_CUSTOMER_TOKEN: other_customer,
            ADMIN_TOKEN: admin,
        }
    )


@pytest.fixture
def app(settings, service, tokens):
    return create_app(settings, service=service, tokens=tokens)


@pytest.fixture
def api_client(app):
    """FastAPI test client bound to the in-memory database."""
    with TestClient(app) as client:
        yield client
