"""FastAPI REST API for storefront orders."""

import logging
import threading
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .config import Settings, get_settings
from .db import create_db_engine, create_session_factory, init_db
from .errors import (
    AccessDeniedError,
    AuthenticationError,
    ConfigError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    PersistenceError,
    StorefrontError,
    ValidationError,
)
from .identity import TokenRegistry, parse_bearer
from .models import Identity, Order, OrderFilter, to_money
from .order_service import OrderService
from .order_store import OrderStore
from .pricing import shipping_options
from .schemas import StatusUpdateRequest, field_errors
from .tracking import build_tracking

log = logging.getLogger(__name__)


# --- Helper Functions ---


def get_settings_for(request: Request) -> Settings:
    return request.app.state.settings or get_settings()


def get_order_service(request: Request) -> OrderService:
    """Get the app's OrderService, connecting to the database on first use."""
    state = request.app.state
    if state.order_service is None:
        with state.init_lock:
            if state.order_service is None:
                settings = get_settings_for(request)
                try:
                    engine = create_db_engine(settings.database_url)
                    init_db(engine)
                except (SQLAlchemyError, OSError) as e:
                    log.error("Could not open database %s: %s", settings.database_url, e)
                    raise PersistenceError("connect to the database", e) from e
                state.order_service = OrderService(OrderStore(create_session_factory(engine)))
    return state.order_service


def get_token_registry(request: Request) -> TokenRegistry:
    """Get the app's TokenRegistry, loading the token file on first use."""
    state = request.app.state
    if state.token_registry is None:
        with state.init_lock:
            if state.token_registry is None:
                state.token_registry = TokenRegistry.from_file(
                    get_settings_for(request).tokens_file
                )
    return state.token_registry


def get_identity(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Identity:
    """Resolve the bearer token. No header means an anonymous caller."""
    token = parse_bearer(authorization)
    if authorization and token is None:
        raise AuthenticationError("Malformed authorization header")
    return get_token_registry(request).resolve(token)


def order_with_customer(order: Order) -> dict[str, Any]:
    """Order JSON plus the owning customer summary (null for guest orders)."""
    data = order.to_dict()
    data["customer"] = (
        {"id": order.owner_id, "email": order.contact.email}
        if order.owner_id is not None
        else None
    )
    return data


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 422,
    AuthenticationError: 401,
    AccessDeniedError: 403,
    OrderNotFoundError: 404,
    InvalidStatusTransitionError: 409,
    PersistenceError: 503,
    ConfigError: 500,
}


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    headers = None
    if isinstance(exc, ValidationError):
        content["detail"] = exc.message
        content["errors"] = exc.errors
    elif isinstance(exc, InvalidStatusTransitionError):
        content["current"] = exc.current
        content["target"] = exc.target
    elif isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reshape FastAPI's own validation errors into the storefront error body."""
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request",
            "error_type": ValidationError.__name__,
            "errors": field_errors(exc),
        },
    )


# --- Endpoints ---


router = APIRouter(prefix="/api")


@router.get("/health")
def health_check(request: Request):
    """
    Health check endpoint.

    Reports whether the order database answers.
    """
    try:
        database_ok = get_order_service(request).store.ping()
    except StorefrontError:
        database_ok = False
    return {"status": "ok", "database": "ok" if database_ok else "error"}


@router.get("/shipping-options")
def list_shipping_options(subtotal: Decimal = Query(default=Decimal("0"), ge=0)):
    """Shipping options priced for a cart subtotal."""
    return [option.to_dict() for option in shipping_options(to_money(subtotal))]


# --- Order Endpoints ---


@router.post("/orders", status_code=201)
def create_order(
    payload: dict[str, Any] = Body(...),
    idempotency_key: Optional[str] = Header(default=None),
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
):
    """
    Create an order from `{orderData, orderItems}`.

    Guests may order; a signed-in customer becomes the owner. Resubmitting
    with the same Idempotency-Key returns the original order.
    """
    order = service.submit_payload(payload, identity, idempotency_key=idempotency_key)
    return order_with_customer(order)


@router.get("/orders")
def list_orders(
    status: Optional[str] = Query(default=None),
    customer_id: Optional[int] = Query(default=None, alias="customerId"),
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    page: int = Query(default=1),
    limit: int = Query(default=10),
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
):
    """List all orders (admin only). Dates are inclusive calendar days."""
    filters = OrderFilter(
        status=status,
        customer_id=customer_id,
        start_date=datetime.combine(start_date, time.min) if start_date else None,
        end_date=datetime.combine(end_date, time.max) if end_date else None,
        page=page,
        limit=limit,
    )
    return service.list_orders(filters, identity).to_dict()


@router.get("/customer/orders")
def list_customer_orders(
    page: int = Query(default=1),
    limit: int = Query(default=10),
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
):
    """List the calling customer's orders."""
    return service.list_customer_orders(identity, page=page, limit=limit).to_dict()


@router.get("/orders/{order_id}")
def get_order(
    order_id: int,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
):
    """Get one order with its items."""
    return order_with_customer(service.get_order(order_id, identity))


@router.get("/orders/{order_id}/tracking")
def get_order_tracking(
    order_id: int,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
):
    """Tracking view of one order; same access rules as reading the order."""
    return build_tracking(service.get_order(order_id, identity)).to_dict()


@router.put("/orders/{order_id}/status")
def update_order_status(
    order_id: int,
    body: StatusUpdateRequest,
    identity: Identity = Depends(get_identity),
    service: OrderService = Depends(get_order_service),
):
    """Change an order's status and optionally its expected delivery date (admin only)."""
    order = service.update_status(
        order_id,
        body.status,
        body.expected_delivery_date,
        identity=identity,
    )
    return order_with_customer(order)


# --- Application ---


def create_app(
    settings: Settings | None = None,
    service: OrderService | None = None,
    tokens: TokenRegistry | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use; defaults to the environment at first request.
        service: Pre-built OrderService (otherwise created from settings).
        tokens: Pre-built TokenRegistry (otherwise loaded from settings).
    """
    app = FastAPI(
        title="storefront API",
        description="REST API for placing, tracking and managing orders",
        version=__version__,
    )

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.order_service = service
    app.state.token_registry = tokens
    app.state.init_lock = threading.Lock()

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    return app


app = create_app()
