"""Shipping, tax and total calculation."""

from decimal import Decimal
from typing import Iterable

from .errors import ValidationError
from .models import CartItem, PriceQuote, ShippingOption, to_money

FREE_SHIPPING_THRESHOLD = Decimal("150.00")
STANDARD_SHIPPING_FEE = Decimal("15.00")
EXPRESS_SHIPPING_FEE = Decimal("25.00")
TAX_RATE = Decimal("0.07")
# Largest amount a Numeric(10, 2) column holds.
MAX_AMOUNT = Decimal("99999999.99")

DEFAULT_SHIPPING_OPTION = "standard"


def shipping_options(subtotal: Decimal) -> list[ShippingOption]:
    """
    Shipping options priced for a given subtotal.

    Standard shipping is free once the subtotal reaches the threshold;
    express is always charged.
    """
    standard_fee = Decimal("0.00") if subtotal >= FREE_SHIPPING_THRESHOLD else STANDARD_SHIPPING_FEE
    return [
        ShippingOption("standard", "Standard Shipping", standard_fee, "3-5"),
        ShippingOption("express", "Express Shipping", EXPRESS_SHIPPING_FEE, "1-2"),
    ]


def get_shipping_option(option_id: str, subtotal: Decimal) -> ShippingOption:
    """
    Look up one shipping option by ID.

    Raises:
        ValidationError: If the option ID is unknown.
    """
    options = shipping_options(subtotal)
    for option in options:
        if option.id == option_id:
            return option
    valid = ", ".join(o.id for o in options)
    raise ValidationError.for_field(
        "shippingMethod", f"Unknown shipping option '{option_id}' (expected one of: {valid})"
    )


def calculate_subtotal(items: Iterable[CartItem]) -> Decimal:
    return to_money(sum((item.unit_price * item.quantity for item in items), Decimal("0")))


def calculate_tax(subtotal: Decimal) -> Decimal:
    return to_money(subtotal * TAX_RATE)


def quote(items: Iterable[CartItem], option_id: str = DEFAULT_SHIPPING_OPTION) -> PriceQuote:
    """Price a set of items with the chosen shipping option."""
    subtotal = calculate_subtotal(items)
    shipping = get_shipping_option(option_id, subtotal).price
    tax = calculate_tax(subtotal)
    return PriceQuote(
        subtotal=subtotal,
        shipping=to_money(shipping),
        tax=tax,
        total=to_money(subtotal + shipping + tax),
    )
