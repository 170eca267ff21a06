"""
Request schemas for order submission and checkout steps.

One canonical payload shape: `{orderData, orderItems}` with camelCase keys.
Unknown fields are rejected rather than mapped from older naming variants.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .errors import ValidationError
from .models import (
    Address,
    BillingAddress,
    CartItem,
    ContactInfo,
    OrderDraft,
    PaymentMethod,
)
from .pricing import MAX_AMOUNT


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


class ContactFields(WireModel):
    first_name: str = Field(..., min_length=2, description="First name must be at least 2 characters")
    last_name: str = Field(..., min_length=2, description="Last name must be at least 2 characters")
    email: EmailStr
    phone: str = Field(..., min_length=5, description="Please enter a valid phone number")


class AddressFields(WireModel):
    address: str = Field(..., min_length=5, description="Please enter your full address")
    city: str = Field(..., min_length=2)
    state: str = Field(..., min_length=2)
    zip_code: str = Field(..., min_length=2)
    country: str = Field(..., min_length=2)


class BillingAddressSchema(AddressFields):
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)

    def to_billing(self) -> BillingAddress:
        return BillingAddress(
            first_name=self.first_name,
            last_name=self.last_name,
            address=self.address,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
        )


class BillingChoice(WireModel):
    """Billing address is required only when it differs from the shipping address."""

    same_as_billing: bool = True
    billing_address: Optional[BillingAddressSchema] = None

    @model_validator(mode="after")
    def _billing_required_when_different(self):
        if not self.same_as_billing and self.billing_address is None:
            raise ValueError("billingAddress is required when sameAsBilling is false")
        return self


class OrderDataSchema(ContactFields, AddressFields, BillingChoice):
    shipping_method: str = "standard"
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=2000)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=255)
    # Client-computed totals are accepted as hints and never stored
    subtotal: Optional[Decimal] = None
    shipping: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    total: Optional[Decimal] = None


class OrderItemSchema(WireModel):
    product_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1)
    unit_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    quantity: int = Field(..., ge=1, le=999)

    @model_validator(mode="after")
    def _line_total_fits(self):
        if self.unit_price * self.quantity > MAX_AMOUNT:
            raise ValueError(f"Line total must not exceed {MAX_AMOUNT}")
        return self


class OrderCreateRequest(WireModel):
    order_data: OrderDataSchema
    order_items: list[OrderItemSchema] = Field(..., min_length=1)

    def to_draft(self, idempotency_key: str | None = None) -> OrderDraft:
        data = self.order_data
        contact = ContactInfo(
            first_name=data.first_name,
            last_name=data.last_name,
            email=str(data.email),
            phone=data.phone,
        )
        shipping_address = Address(
            address=data.address,
            city=data.city,
            state=data.state,
            zip_code=data.zip_code,
            country=data.country,
        )
        if data.same_as_billing or data.billing_address is None:
            billing = BillingAddress.from_shipping(contact, shipping_address)
        else:
            billing = data.billing_address.to_billing()
        return OrderDraft(
            contact=contact,
            shipping_address=shipping_address,
            billing_address=billing,
            shipping_option_id=data.shipping_method,
            payment_method=data.payment_method,
            items=tuple(
                CartItem(
                    product_id=i.product_id,
                    name=i.name,
                    unit_price=i.unit_price,
                    quantity=i.quantity,
                )
                for i in self.order_items
            ),
            notes=data.notes or None,
            same_as_billing=data.same_as_billing,
            idempotency_key=idempotency_key or data.idempotency_key,
        )


class StatusUpdateRequest(WireModel):
    status: str
    expected_delivery_date: Optional[date] = None


# Checkout step forms


class InformationForm(ContactFields, AddressFields):
    pass


class ShippingForm(BillingChoice):
    shipping_method: str = "standard"


class PaymentForm(WireModel):
    payment_method: PaymentMethod
    notes: Optional[str] = Field(None, max_length=2000)


# Error conversion


def field_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    """Group pydantic error messages by dotted field location."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = list(err.get("loc", ()))
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        loc = [str(p) for p in loc]
        key = ".".join(loc) or "__root__"
        errors.setdefault(key, []).append(err.get("msg", "Invalid value"))
    return errors


def to_validation_error(exc: PydanticValidationError, message: str) -> ValidationError:
    return ValidationError(message, field_errors(exc))


def parse_order_request(payload: dict) -> OrderCreateRequest:
    """
    Validate a raw `{orderData, orderItems}` payload.

    Raises:
        ValidationError: With field-level messages.
    """
    try:
        return OrderCreateRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise to_validation_error(e, "Invalid order data") from e
