"""
HTTP client for the storefront order API.

Used by the checkout wizard and the CLI. HTTP error responses are turned
back into the same typed exceptions the server raised.
"""

import logging
from datetime import date
from typing import Any

import httpx

from .errors import (
    AccessDeniedError,
    AuthenticationError,
    InvalidStatusTransitionError,
    NetworkError,
    OrderNotFoundError,
    PersistenceError,
    StorefrontError,
    ValidationError,
)
from .models import Order, OrderPage, ShippingOption, to_money

log = logging.getLogger(__name__)

API_PREFIX = "/api"


def _page_from_dict(data: dict[str, Any]) -> OrderPage:
    pagination = data.get("pagination", {})
    return OrderPage(
        orders=[Order.from_dict(o) for o in data.get("orders", [])],
        total=pagination.get("total", 0),
        page=pagination.get("page", 1),
        limit=pagination.get("limit", 10),
    )


class OrderClient:
    """Client for the order endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 5.0,
        http_client: httpx.Client | None = None,
    ):
        """
        Initialize OrderClient.

        Args:
            base_url: Server root, e.g. http://127.0.0.1:8000.
            timeout: Connect timeout in seconds; reads get a little longer.
            http_client: Pre-built client (e.g. a FastAPI TestClient). When
                given, base_url and timeout are ignored.
        """
        if http_client is not None:
            self.client = http_client
            self._owns_client = False
        else:
            if base_url is None:
                raise ValueError("base_url is required without an http_client")
            self.client = httpx.Client(
                base_url=base_url, timeout=httpx.Timeout(timeout, read=timeout + 3.0)
            )
            self._owns_client = True

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "OrderClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        token: str | None = None,
        order_id: int | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        request_headers = dict(headers or {})
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        url = f"{API_PREFIX}{path}"

        try:
            response = self.client.request(method, url, headers=request_headers, **kwargs)
        except httpx.TransportError as e:
            log.warning("%s %s failed: %s", method, url, e)
            raise NetworkError(url, e) from e

        if response.is_success:
            return response.json()
        self._raise_for_response(response, operation, order_id)

    def _raise_for_response(
        self, response: httpx.Response, operation: str, order_id: int | None
    ) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = str(body.get("detail") or response.text or response.reason_phrase)
        code = response.status_code

        if code in (400, 422):
            raise ValidationError(detail, body.get("errors"))
        if code == 401:
            raise AuthenticationError(detail.removeprefix("Unauthorized - "))
        if code == 403:
            raise AccessDeniedError(detail)
        if code == 404:
            raise OrderNotFoundError(order_id if order_id is not None else response.url.path)
        if code == 409:
            raise InvalidStatusTransitionError(
                body.get("current", "unknown"), body.get("target", "unknown")
            )
        if code >= 500:
            raise PersistenceError(operation)
        raise StorefrontError(f"HTTP {code}: {detail}")

    def submit_order(
        self,
        payload: dict[str, Any],
        token: str | None = None,
        idempotency_key: str | None = None,
    ) -> Order:
        """
        Submit an `{orderData, orderItems}` body.

        Raises:
            NetworkError: If the server couldn't be reached. Safe to retry
                with the same idempotency key.
            ValidationError: If the server rejected the data.
            PersistenceError: If the server failed to store the order.
        """
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = self._request(
            "POST", "/orders", "create order", token=token, headers=headers, json=payload
        )
        return Order.from_dict(data)

    def get_order(self, order_id: int, token: str | None = None) -> Order:
        data = self._request(
            "GET", f"/orders/{order_id}", "load order", token=token, order_id=order_id
        )
        return Order.from_dict(data)

    def get_tracking(self, order_id: int, token: str | None = None) -> dict[str, Any]:
        return self._request(
            "GET", f"/orders/{order_id}/tracking", "load order", token=token, order_id=order_id
        )

    def list_orders(
        self,
        token: str,
        status: str | None = None,
        customer_id: int | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> OrderPage:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        if customer_id is not None:
            params["customerId"] = customer_id
        data = self._request("GET", "/orders", "list orders", token=token, params=params)
        return _page_from_dict(data)

    def list_customer_orders(self, token: str, page: int = 1, limit: int = 10) -> OrderPage:
        data = self._request(
            "GET",
            "/customer/orders",
            "list orders",
            token=token,
            params={"page": page, "limit": limit},
        )
        return _page_from_dict(data)

    def update_status(
        self,
        order_id: int,
        status: str,
        expected_delivery_date: date | None = None,
        token: str | None = None,
    ) -> Order:
        body: dict[str, Any] = {"status": status}
        if expected_delivery_date is not None:
            body["expectedDeliveryDate"] = expected_delivery_date.isoformat()
        data = self._request(
            "PUT",
            f"/orders/{order_id}/status",
            "update order status",
            token=token,
            order_id=order_id,
            json=body,
        )
        return Order.from_dict(data)

    def shipping_options(self, subtotal) -> list[ShippingOption]:
        data = self._request(
            "GET", "/shipping-options", "load shipping options", params={"subtotal": str(subtotal)}
        )
        return [
            ShippingOption(o["id"], o["name"], to_money(o["price"]), o["days"]) for o in data
        ]
