"""
Order submission, retrieval and status changes.

This is the server-side core behind the HTTP routes. Every operation takes
the caller's Identity explicitly and applies the authorization rules here,
so the routes only translate HTTP to calls.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from . import pricing
from .errors import AccessDeniedError, AuthenticationError, ValidationError
from .logging_config import order_prefix
from .models import Identity, Order, OrderDraft, OrderFilter, OrderPage, OrderStatus
from .order_store import OrderStore
from .schemas import parse_order_request
from .status import parse_status

log = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _require_authenticated(identity: Identity) -> None:
    if not identity.is_authenticated:
        raise AuthenticationError()


def _require_admin(identity: Identity) -> None:
    _require_authenticated(identity)
    if not identity.is_admin:
        raise AccessDeniedError("Forbidden - admin access required")


def _check_paging(page: int, limit: int) -> None:
    errors: dict[str, list[str]] = {}
    if page < 1:
        errors["page"] = ["Page must be 1 or greater"]
    if not 1 <= limit <= MAX_PAGE_SIZE:
        errors["limit"] = [f"Limit must be between 1 and {MAX_PAGE_SIZE}"]
    if errors:
        raise ValidationError("Invalid pagination", errors)


class OrderService:
    """Applies order rules on top of an OrderStore."""

    def __init__(self, store: OrderStore):
        """
        Initialize OrderService.

        Args:
            store: Persistence for orders and items.
        """
        self.store = store

    def submit_payload(
        self,
        payload: dict[str, Any],
        identity: Identity,
        idempotency_key: str | None = None,
    ) -> Order:
        """
        Validate a raw `{orderData, orderItems}` body and create the order.

        Args:
            payload: Request body.
            identity: Caller identity (anonymous for guest checkout).
            idempotency_key: Key from the `Idempotency-Key` header; takes
                precedence over `orderData.idempotencyKey`.

        Raises:
            ValidationError: If the body is malformed.
            PersistenceError: If the write fails.
        """
        request = parse_order_request(payload)
        data = request.order_data
        client_totals = {
            name: getattr(data, name)
            for name in ("subtotal", "shipping", "tax", "total")
            if getattr(data, name) is not None
        }
        return self.submit_order(
            request.to_draft(idempotency_key), identity, client_totals=client_totals
        )

    def submit_order(
        self,
        draft: OrderDraft,
        identity: Identity,
        client_totals: dict[str, Decimal] | None = None,
    ) -> Order:
        """
        Create an order from a draft.

        Totals are always recomputed from the submitted unit prices,
        quantities and shipping option. Totals sent by the client are only
        compared, never stored.

        Returns:
            The created order with its items, or the existing order if the
            draft's idempotency key was already used.

        Raises:
            ValidationError: If the draft has no items or a malformed field.
            PersistenceError: If the write fails; nothing was stored.
            AccessDeniedError: If the idempotency key belongs to another caller's order.
        """
        if not draft.items:
            raise ValidationError.for_field("orderItems", "Order must contain at least one item")
        parse_order_request(draft.to_payload())
        owner_id = identity.id if identity.is_customer else None

        if draft.idempotency_key:
            existing = self.store.find_by_idempotency_key(draft.idempotency_key)
            if existing is not None:
                self._check_replay_owner(existing, owner_id)
                log.info(
                    "%s Duplicate submission (key %s), returning existing order",
                    order_prefix(existing.order_number),
                    draft.idempotency_key,
                )
                return existing

        quote = pricing.quote(draft.items, draft.shipping_option_id)
        if quote.total > pricing.MAX_AMOUNT:
            raise ValidationError.for_field(
                "orderItems", f"Order total must not exceed {pricing.MAX_AMOUNT}"
            )
        if client_totals:
            server_totals = {
                "subtotal": quote.subtotal,
                "shipping": quote.shipping,
                "tax": quote.tax,
                "total": quote.total,
            }
            mismatched = {
                k: str(v) for k, v in client_totals.items() if v != server_totals[k]
            }
            if mismatched:
                log.debug(
                    "%s Ignoring client totals %s; using %s",
                    order_prefix(None),
                    mismatched,
                    quote.to_dict(),
                )

        # create() hands back the winner of a concurrent insert with the same key
        order = self.store.create(draft, owner_id, quote)
        self._check_replay_owner(order, owner_id)
        log.info(
            "%s Submitted by %s",
            order_prefix(order.order_number),
            f"customer {owner_id}" if owner_id is not None else "guest",
        )
        return order

    def _check_replay_owner(self, order: Order, owner_id: int | None) -> None:
        if order.owner_id != owner_id:
            log.warning(
                "%s Idempotency key reused by a different caller",
                order_prefix(order.order_number),
            )
            raise AccessDeniedError()

    def _authorize_read(self, order: Order, identity: Identity) -> None:
        if not identity.is_authenticated or identity.is_admin or order.owner_id is None:
            return
        if identity.id == order.owner_id:
            return
        log.warning(
            "%s Read denied for user %s",
            order_prefix(order.order_number),
            identity.id,
        )
        raise AccessDeniedError()

    def get_order(self, order_id: int, identity: Identity) -> Order:
        """
        Get one order if the caller may see it.

        Admins see every order and guest orders are readable by anyone
        holding the ID. Only a signed-in customer other than the owner is
        refused; unauthenticated callers see the order, as the order
        confirmation and tracking links require.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            AccessDeniedError: If a different customer owns the order.
        """
        order = self.store.get(order_id)
        self._authorize_read(order, identity)
        return order

    def list_orders(self, filters: OrderFilter, identity: Identity) -> OrderPage:
        """
        List orders for administrators.

        Raises:
            AuthenticationError: If the caller is anonymous.
            AccessDeniedError: If the caller isn't an admin.
            ValidationError: If the status or paging values are invalid.
        """
        _require_admin(identity)
        _check_paging(filters.page, filters.limit)
        if filters.status and filters.status != "all":
            parse_status(filters.status)
        return self.store.list_orders(filters)

    def list_customer_orders(
        self, identity: Identity, page: int = 1, limit: int = 10
    ) -> OrderPage:
        """List the calling customer's own orders, newest first."""
        _require_authenticated(identity)
        if not identity.is_customer:
            raise AccessDeniedError("Forbidden - customer access required")
        _check_paging(page, limit)
        return self.store.list_orders(
            OrderFilter(customer_id=identity.id, page=page, limit=limit)
        )

    def update_status(
        self,
        order_id: int,
        status: str | OrderStatus,
        expected_delivery_date: date | None = None,
        *,
        identity: Identity,
    ) -> Order:
        """
        Change an order's status. Admin only; last write wins.

        Raises:
            AuthenticationError: If the caller is anonymous.
            AccessDeniedError: If the caller isn't an admin.
            ValidationError: If the status name is unknown.
            OrderNotFoundError: If the order doesn't exist.
            InvalidStatusTransitionError: If the order can't move to `status`.
        """
        _require_admin(identity)
        target = status if isinstance(status, OrderStatus) else parse_status(status)
        return self.store.update_status(order_id, target, expected_delivery_date)
