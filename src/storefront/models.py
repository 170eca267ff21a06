"""Data models for storefront."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
import math
import uuid

CENT = Decimal("0.01")


def _utc_now() -> datetime:
    """Return current UTC time (naive, as stored in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value: datetime | None) -> str | None:
    """Format a UTC datetime as ISO 8601 with a Z suffix."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _generate_key() -> str:
    """Generate a new idempotency key."""
    return str(uuid.uuid4())


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce a value to a two-place Decimal, rounding half up."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return f"${to_money(value):,.2f}"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Who is calling. Issued elsewhere; the core only reads it."""

    id: int | None
    role: Role | None
    email: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.role is not None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_customer(self) -> bool:
        return self.role is Role.CUSTOMER

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(id=None, role=None)

    @classmethod
    def customer(cls, customer_id: int, email: str | None = None) -> "Identity":
        return cls(id=customer_id, role=Role.CUSTOMER, email=email)

    @classmethod
    def admin(cls, admin_id: int, email: str | None = None) -> "Identity":
        return cls(id=admin_id, role=Role.ADMIN, email=email)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Identity":
        return cls(
            id=int(data["id"]),
            role=Role(data["role"]),
            email=data.get("email"),
        )


# Cart models


@dataclass
class CartItem:
    """A product line held in the shopping cart."""

    product_id: int
    name: str
    unit_price: Decimal
    quantity: int = 1
    image_ref: str | None = None

    def __post_init__(self) -> None:
        self.unit_price = to_money(self.unit_price)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
        }
        if self.image_ref is not None:
            result["image_ref"] = self.image_ref
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            product_id=int(data["product_id"]),
            name=data["name"],
            unit_price=to_money(data["unit_price"]),
            quantity=int(data.get("quantity", 1)),
            image_ref=data.get("image_ref"),
        )


# Checkout models


@dataclass(frozen=True)
class ContactInfo:
    first_name: str
    last_name: str
    email: str
    phone: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class Address:
    address: str
    city: str
    state: str
    zip_code: str
    country: str

    def lines(self) -> list[str]:
        return [self.address, f"{self.city}, {self.state} {self.zip_code}", self.country]


@dataclass(frozen=True)
class BillingAddress:
    first_name: str
    last_name: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str

    @classmethod
    def from_shipping(cls, contact: ContactInfo, shipping: Address) -> "BillingAddress":
        return cls(
            first_name=contact.first_name,
            last_name=contact.last_name,
            address=shipping.address,
            city=shipping.city,
            state=shipping.state,
            zip_code=shipping.zip_code,
            country=shipping.country,
        )


@dataclass(frozen=True)
class ShippingOption:
    id: str
    name: str
    price: Decimal
    days: str

    @property
    def is_free(self) -> bool:
        return self.price == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "days": self.days,
            "free": self.is_free,
        }


@dataclass(frozen=True)
class PriceQuote:
    """Subtotal, shipping, tax and total for a set of items."""

    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "shipping": str(self.shipping),
            "tax": str(self.tax),
            "total": str(self.total),
        }


@dataclass(frozen=True)
class OrderDraft:
    """A not-yet-persisted order, in the one canonical shape the server accepts."""

    contact: ContactInfo
    shipping_address: Address
    billing_address: BillingAddress
    shipping_option_id: str
    payment_method: PaymentMethod
    items: tuple[CartItem, ...]
    notes: str | None = None
    same_as_billing: bool = True
    idempotency_key: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the `{orderData, orderItems}` request body."""
        order_data: dict[str, Any] = {
            "firstName": self.contact.first_name,
            "lastName": self.contact.last_name,
            "email": self.contact.email,
            "phone": self.contact.phone,
            "address": self.shipping_address.address,
            "city": self.shipping_address.city,
            "state": self.shipping_address.state,
            "zipCode": self.shipping_address.zip_code,
            "country": self.shipping_address.country,
            "sameAsBilling": self.same_as_billing,
            "billingAddress": {
                "firstName": self.billing_address.first_name,
                "lastName": self.billing_address.last_name,
                "address": self.billing_address.address,
                "city": self.billing_address.city,
                "state": self.billing_address.state,
                "zipCode": self.billing_address.zip_code,
                "country": self.billing_address.country,
            },
            "shippingMethod": self.shipping_option_id,
            "paymentMethod": self.payment_method.value,
        }
        if self.notes:
            order_data["notes"] = self.notes
        if self.idempotency_key:
            order_data["idempotencyKey"] = self.idempotency_key
        order_items = [
            {
                "productId": item.product_id,
                "name": item.name,
                "unitPrice": str(item.unit_price),
                "quantity": item.quantity,
            }
            for item in self.items
        ]
        return {"orderData": order_data, "orderItems": order_items}


# Order models


@dataclass
class OrderItem:
    """One product line of a persisted order, with its price snapshot."""

    id: int
    order_id: int
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "productId": self.product_id,
            "name": self.name,
            "unitPrice": str(self.unit_price),
            "quantity": self.quantity,
            "lineTotal": str(self.line_total),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            id=data["id"],
            order_id=data["orderId"],
            product_id=data["productId"],
            name=data["name"],
            unit_price=to_money(data["unitPrice"]),
            quantity=data["quantity"],
            line_total=to_money(data["lineTotal"]),
        )


@dataclass
class Order:
    """A persisted order header with its line items."""

    id: int
    order_number: str
    owner_id: int | None
    contact: ContactInfo
    shipping_address: Address
    billing_address: BillingAddress
    status: OrderStatus
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    shipping_method: str
    created_at: datetime
    updated_at: datetime
    notes: str | None = None
    expected_delivery_date: date | None = None
    items: list[OrderItem] = field(default_factory=list)

    @property
    def is_guest(self) -> bool:
        return self.owner_id is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "ownerId": self.owner_id,
            "firstName": self.contact.first_name,
            "lastName": self.contact.last_name,
            "email": self.contact.email,
            "phone": self.contact.phone,
            "address": self.shipping_address.address,
            "city": self.shipping_address.city,
            "state": self.shipping_address.state,
            "zipCode": self.shipping_address.zip_code,
            "country": self.shipping_address.country,
            "billingAddress": {
                "firstName": self.billing_address.first_name,
                "lastName": self.billing_address.last_name,
                "address": self.billing_address.address,
                "city": self.billing_address.city,
                "state": self.billing_address.state,
                "zipCode": self.billing_address.zip_code,
                "country": self.billing_address.country,
            },
            "notes": self.notes,
            "status": self.status.value,
            "subtotal": str(self.subtotal),
            "shipping": str(self.shipping),
            "tax": str(self.tax),
            "total": str(self.total),
            "paymentMethod": self.payment_method.value,
            "paymentStatus": self.payment_status.value,
            "shippingMethod": self.shipping_method,
            "expectedDeliveryDate": (
                self.expected_delivery_date.isoformat()
                if self.expected_delivery_date
                else None
            ),
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        billing = data.get("billingAddress") or {}
        expected = data.get("expectedDeliveryDate")
        return cls(
            id=data["id"],
            order_number=data["orderNumber"],
            owner_id=data.get("ownerId"),
            contact=ContactInfo(
                first_name=data["firstName"],
                last_name=data["lastName"],
                email=data["email"],
                phone=data.get("phone") or "",
            ),
            shipping_address=Address(
                address=data["address"],
                city=data["city"],
                state=data["state"],
                zip_code=data["zipCode"],
                country=data["country"],
            ),
            billing_address=BillingAddress(
                first_name=billing.get("firstName", data["firstName"]),
                last_name=billing.get("lastName", data["lastName"]),
                address=billing.get("address", data["address"]),
                city=billing.get("city", data["city"]),
                state=billing.get("state", data["state"]),
                zip_code=billing.get("zipCode", data["zipCode"]),
                country=billing.get("country", data["country"]),
            ),
            notes=data.get("notes"),
            status=OrderStatus(data["status"]),
            subtotal=to_money(data["subtotal"]),
            shipping=to_money(data["shipping"]),
            tax=to_money(data["tax"]),
            total=to_money(data["total"]),
            payment_method=PaymentMethod(data["paymentMethod"]),
            payment_status=PaymentStatus(data["paymentStatus"]),
            shipping_method=data.get("shippingMethod", "standard"),
            expected_delivery_date=date.fromisoformat(expected) if expected else None,
            created_at=_parse_datetime(data["createdAt"]) or _utc_now(),
            updated_at=_parse_datetime(data.get("updatedAt")) or _utc_now(),
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
        )


@dataclass(frozen=True)
class OrderFilter:
    """Admin listing filters. `status="all"` means no status filter."""

    status: str | None = None
    customer_id: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class OrderPage:
    """One page of an order listing."""

    orders: list[Order]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "orders": [o.to_dict() for o in self.orders],
            "pagination": {
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "totalPages": self.total_pages,
            },
        }
