"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when submitted order or checkout data is malformed."""

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None):
        self.message = message
        self.errors = errors or {}
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", {field: [message]})


class AuthenticationError(StorefrontError):
    """Raised when a bearer token is missing or not recognized."""

    def __init__(self, reason: str = "No token provided"):
        self.reason = reason
        super().__init__(f"Unauthorized - {reason}")


class AccessDeniedError(StorefrontError):
    """Raised when the caller may not see or change the requested resource."""

    def __init__(self, reason: str = "Forbidden"):
        self.reason = reason
        super().__init__(reason)


class OrderNotFoundError(StorefrontError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: int | str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidStatusTransitionError(StorefrontError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from '{current}' to '{target}'")


class PersistenceError(StorefrontError):
    """Raised when the database write fails. Nothing was stored; safe to retry."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}. Please try again.")


class NetworkError(StorefrontError):
    """Raised by the HTTP client when the request did not complete."""

    def __init__(self, url: str, cause: Exception | None = None):
        self.url = url
        self.cause = cause
        msg = f"Could not reach {url}"
        if cause is not None:
            msg = f"{msg} ({cause})"
        super().__init__(msg)


class CheckoutStepError(StorefrontError):
    """Raised when a checkout action is invoked on the wrong step."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checkout is at step '{actual}', expected '{expected}'")


class SubmissionInProgressError(StorefrontError):
    """Raised when an order is placed while a previous submission is still in flight."""

    def __init__(self) -> None:
        super().__init__("Order submission already in progress")


class ConfigError(StorefrontError):
    """Raised when a configuration file can't be read."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration in {path}: {reason}")
