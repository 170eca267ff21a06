"""Customer-facing order tracking view."""

from dataclasses import dataclass
from datetime import date
from typing import Any

from .models import Address, Order, OrderItem, OrderStatus, PriceQuote, format_money

STAGES = ("Order Placed", "Processing", "Out for Delivery", "Delivered")

_STAGE_INDEX = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.OUT_FOR_DELIVERY: 2,
    OrderStatus.DELIVERED: 3,
}

_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.OUT_FOR_DELIVERY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

NOT_AVAILABLE = "Not available"


def status_label(status: OrderStatus | str) -> str:
    """Human label for a status; anything unrecognized is "Unknown"."""
    try:
        return _LABELS[OrderStatus(status)]
    except ValueError:
        return "Unknown"


def format_delivery_date(value: date | None) -> str:
    """Format like "Saturday, October 17, 2026"."""
    if value is None:
        return NOT_AVAILABLE
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


@dataclass(frozen=True)
class TrackingView:
    order_number: str
    status: OrderStatus
    status_label: str
    stages: tuple[tuple[str, bool], ...]
    current_index: int
    cancelled: bool
    expected_delivery: str
    items: tuple[OrderItem, ...]
    shipping_address: Address
    totals: PriceQuote

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderNumber": self.order_number,
            "status": self.status.value,
            "statusLabel": self.status_label,
            "cancelled": self.cancelled,
            "currentIndex": self.current_index,
            "stages": [
                {"name": name, "completed": completed} for name, completed in self.stages
            ],
            "expectedDelivery": self.expected_delivery,
            "items": [item.to_dict() for item in self.items],
            "shippingAddress": {
                "address": self.shipping_address.address,
                "city": self.shipping_address.city,
                "state": self.shipping_address.state,
                "zipCode": self.shipping_address.zip_code,
                "country": self.shipping_address.country,
            },
            "totals": self.totals.to_dict(),
        }


def build_tracking(order: Order) -> TrackingView:
    """
    Derive the tracking view for an order.

    A cancelled order has no progress stages and a current index of -1.
    Otherwise every stage up to and including the current one is completed.
    """
    cancelled = order.status is OrderStatus.CANCELLED
    if cancelled:
        current_index = -1
        stages: tuple[tuple[str, bool], ...] = ()
    else:
        current_index = _STAGE_INDEX[order.status]
        stages = tuple((name, i <= current_index) for i, name in enumerate(STAGES))

    return TrackingView(
        order_number=order.order_number,
        status=order.status,
        status_label=status_label(order.status),
        stages=stages,
        current_index=current_index,
        cancelled=cancelled,
        expected_delivery=format_delivery_date(order.expected_delivery_date),
        items=tuple(order.items),
        shipping_address=order.shipping_address,
        totals=PriceQuote(
            subtotal=order.subtotal,
            shipping=order.shipping,
            tax=order.tax,
            total=order.total,
        ),
    )


def render_tracking(view: TrackingView) -> str:
    """Plain-text rendering for terminals."""
    lines = [f"Order {view.order_number}", f"Status: {view.status_label}", ""]

    if view.cancelled:
        lines += ["Order Cancelled", "This order has been cancelled."]
    else:
        for name, completed in view.stages:
            lines.append(f"  [{'x' if completed else ' '}] {name}")
        lines += ["", f"Expected delivery: {view.expected_delivery}"]

    lines += ["", "Items:"]
    for item in view.items:
        lines.append(
            f"  {item.quantity} x {item.name} @ {format_money(item.unit_price)}"
            f" = {format_money(item.line_total)}"
        )

    lines += ["", "Shipping to:"]
    lines += [f"  {line}" for line in view.shipping_address.lines()]

    totals = view.totals
    shipping = "Free" if totals.shipping == 0 else format_money(totals.shipping)
    lines += [
        "",
        f"Subtotal: {format_money(totals.subtotal)}",
        f"Shipping: {shipping}",
        f"Tax:      {format_money(totals.tax)}",
        f"Total:    {format_money(totals.total)}",
    ]
    return "\n".join(lines)
