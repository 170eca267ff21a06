"""Order status progression rules."""

from .errors import InvalidStatusTransitionError, ValidationError
from .models import OrderStatus

# Normal fulfillment sequence; cancelled sits outside it
PROGRESSION: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def parse_status(value: str) -> OrderStatus:
    """
    Parse a status name.

    Raises:
        ValidationError: If the value is not a known status.
    """
    try:
        return OrderStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in OrderStatus)
        raise ValidationError.for_field(
            "status", f"Unknown status '{value}' (expected one of: {valid})"
        ) from None


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_targets(current: OrderStatus) -> list[OrderStatus]:
    """Statuses an order may move to from `current`."""
    if is_terminal(current):
        return []
    index = PROGRESSION.index(current)
    return list(PROGRESSION[index:]) + [OrderStatus.CANCELLED]


def check_transition(current: OrderStatus, target: OrderStatus) -> None:
    """
    Validate a status change.

    Forward moves (including skips) and cancellation are allowed from any
    non-terminal status. Re-applying the current status is allowed so that
    only the expected delivery date can be changed. Nothing leaves a
    terminal status.

    Raises:
        InvalidStatusTransitionError: If the change is not allowed.
    """
    if target not in allowed_targets(current):
        raise InvalidStatusTransitionError(current.value, target.value)
