"""Order storage for storefront."""

import logging
import uuid
from datetime import date

from sqlalchemy import Select, func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .db import OrderItemRow, OrderRow
from .errors import OrderNotFoundError, PersistenceError
from .logging_config import order_prefix
from .models import (
    Address,
    BillingAddress,
    ContactInfo,
    Order,
    OrderDraft,
    OrderFilter,
    OrderItem,
    OrderPage,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PriceQuote,
    _utc_now,
    to_money,
)
from .status import check_transition

log = logging.getLogger(__name__)


def generate_order_number() -> str:
    """Human-readable order reference, e.g. ORD-20261017-3F9A1C."""
    return f"ORD-{_utc_now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def _to_order(row: OrderRow) -> Order:
    """Convert an ORM row (with items loaded) to the Order dataclass."""
    return Order(
        id=row.id,
        order_number=row.order_number,
        owner_id=row.user_id,
        contact=ContactInfo(
            first_name=row.first_name,
            last_name=row.last_name,
            email=row.email,
            phone=row.phone,
        ),
        shipping_address=Address(
            address=row.address,
            city=row.city,
            state=row.state,
            zip_code=row.zip_code,
            country=row.country,
        ),
        billing_address=BillingAddress(
            first_name=row.billing_first_name,
            last_name=row.billing_last_name,
            address=row.billing_address,
            city=row.billing_city,
            state=row.billing_state,
            zip_code=row.billing_zip_code,
            country=row.billing_country,
        ),
        notes=row.order_notes,
        status=OrderStatus(row.status),
        subtotal=to_money(row.subtotal),
        shipping=to_money(row.shipping),
        tax=to_money(row.tax),
        total=to_money(row.total),
        payment_method=PaymentMethod(row.payment_method),
        payment_status=PaymentStatus(row.payment_status),
        shipping_method=row.shipping_method,
        expected_delivery_date=row.expected_delivery_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
        items=[
            OrderItem(
                id=item.id,
                order_id=item.order_id,
                product_id=item.product_id,
                name=item.name,
                unit_price=to_money(item.price),
                quantity=item.quantity,
                line_total=to_money(item.total_price),
            )
            for item in row.items
        ],
    )


class OrderStore:
    """Reads and writes orders and their line items."""

    def __init__(self, session_factory: sessionmaker[Session]):
        """
        Initialize OrderStore.

        Args:
            session_factory: SQLAlchemy session factory bound to the engine.
        """
        self._session_factory = session_factory

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            log.error("Database health check failed: %s", e)
            return False
        return True

    def _select_orders(self) -> Select[tuple[OrderRow]]:
        return select(OrderRow).options(selectinload(OrderRow.items))

    def _load(self, session: Session, order_id: int) -> OrderRow:
        row = session.scalars(self._select_orders().where(OrderRow.id == order_id)).first()
        if row is None:
            raise OrderNotFoundError(order_id)
        return row

    def _add_items(self, session: Session, order: OrderRow, draft: OrderDraft) -> None:
        """Attach line items to a flushed order header, snapshotting name and price."""
        for item in draft.items:
            session.add(
                OrderItemRow(
                    order_id=order.id,
                    product_id=item.product_id,
                    name=item.name,
                    price=item.unit_price,
                    quantity=item.quantity,
                    total_price=item.line_total,
                )
            )
        session.flush()

    def create(self, draft: OrderDraft, owner_id: int | None, quote: PriceQuote) -> Order:
        """
        Persist an order header and all its items in one transaction.

        If anything fails after the header is written, the whole transaction
        is rolled back and no order remains.

        Args:
            draft: Validated order draft.
            owner_id: Customer ID, or None for a guest order.
            quote: Server-computed totals.

        Returns:
            The created Order with items.

        Raises:
            PersistenceError: If the write fails.
        """
        now = _utc_now()
        order_number = generate_order_number()
        header = OrderRow(
            order_number=order_number,
            user_id=owner_id,
            idempotency_key=draft.idempotency_key,
            first_name=draft.contact.first_name,
            last_name=draft.contact.last_name,
            email=draft.contact.email,
            phone=draft.contact.phone,
            address=draft.shipping_address.address,
            city=draft.shipping_address.city,
            state=draft.shipping_address.state,
            zip_code=draft.shipping_address.zip_code,
            country=draft.shipping_address.country,
            billing_first_name=draft.billing_address.first_name,
            billing_last_name=draft.billing_address.last_name,
            billing_address=draft.billing_address.address,
            billing_city=draft.billing_address.city,
            billing_state=draft.billing_address.state,
            billing_zip_code=draft.billing_address.zip_code,
            billing_country=draft.billing_address.country,
            order_notes=draft.notes,
            status=OrderStatus.PENDING.value,
            subtotal=quote.subtotal,
            shipping=quote.shipping,
            tax=quote.tax,
            total=quote.total,
            payment_method=draft.payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            shipping_method=draft.shipping_option_id,
            expected_delivery_date=None,
            created_at=now,
            updated_at=now,
        )

        try:
            with self._session_factory() as session:
                with session.begin():
                    session.add(header)
                    session.flush()
                    self._add_items(session, header, draft)
                order_id = header.id
        except IntegrityError as e:
            if draft.idempotency_key:
                existing = self.find_by_idempotency_key(draft.idempotency_key)
                if existing is not None:
                    return existing
            log.error("%s Order write rejected by database: %s", order_prefix(order_number), e)
            raise PersistenceError("create order", e) from e
        except SQLAlchemyError as e:
            log.error("%s Order write failed, rolled back: %s", order_prefix(order_number), e)
            raise PersistenceError("create order", e) from e

        log.info(
            "%s Created order %d with %d item(s), total %s",
            order_prefix(order_number),
            order_id,
            len(draft.items),
            quote.total,
        )
        return self.get(order_id)

    def get(self, order_id: int) -> Order:
        """
        Get an order with its items.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            PersistenceError: If the read fails.
        """
        try:
            with self._session_factory() as session:
                return _to_order(self._load(session, order_id))
        except SQLAlchemyError as e:
            raise PersistenceError("load order", e) from e

    def find_by_idempotency_key(self, key: str) -> Order | None:
        """Get the order created with this idempotency key, if any."""
        try:
            with self._session_factory() as session:
                row = session.scalars(
                    self._select_orders().where(OrderRow.idempotency_key == key)
                ).first()
                return _to_order(row) if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError("load order", e) from e

    def list_orders(self, filters: OrderFilter) -> OrderPage:
        """
        List orders matching the filters, newest first.

        Returns:
            One page of orders plus the total match count.
        """
        conditions = []
        if filters.status and filters.status != "all":
            conditions.append(OrderRow.status == filters.status)
        if filters.customer_id is not None:
            conditions.append(OrderRow.user_id == filters.customer_id)
        if filters.start_date is not None:
            conditions.append(OrderRow.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(OrderRow.created_at <= filters.end_date)

        try:
            with self._session_factory() as session:
                total = session.scalar(
                    select(func.count()).select_from(OrderRow).where(*conditions)
                )
                rows = session.scalars(
                    self._select_orders()
                    .where(*conditions)
                    .order_by(OrderRow.created_at.desc(), OrderRow.id.desc())
                    .limit(filters.limit)
                    .offset(filters.offset)
                ).all()
                orders = [_to_order(r) for r in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("list orders", e) from e

        return OrderPage(
            orders=orders,
            total=total or 0,
            page=filters.page,
            limit=filters.limit,
        )

    def update_status(
        self,
        order_id: int,
        status: OrderStatus,
        expected_delivery_date: date | None = None,
    ) -> Order:
        """
        Move an order to a new status, optionally setting the delivery estimate.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
            InvalidStatusTransitionError: If the move is not allowed.
            PersistenceError: If the write fails.
        """
        try:
            with self._session_factory() as session:
                with session.begin():
                    row = self._load(session, order_id)
                    previous = OrderStatus(row.status)
                    check_transition(previous, status)
                    row.status = status.value
                    if expected_delivery_date is not None:
                        row.expected_delivery_date = expected_delivery_date
                    row.updated_at = _utc_now()
                    order_number = row.order_number
        except SQLAlchemyError as e:
            raise PersistenceError("update order status", e) from e

        log.info(
            "%s Status %s -> %s (expected delivery: %s)",
            order_prefix(order_number),
            previous.value,
            status.value,
            expected_delivery_date or "unchanged",
        )
        return self.get(order_id)
