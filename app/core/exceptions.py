"""
Domain Exceptions

Typed failures raised by the ordering core. Route handlers never catch
these; the FastAPI exception handlers in ``app.main`` translate them into
HTTP responses using ``status_code``.

    OrderingError
    ├── ValidationError         400  malformed cart, missing gate, bad quantity
    ├── NotFoundError           404  unknown order or product id
    ├── InvalidTransitionError  409  illegal status jump
    ├── PersistenceError        503  Order Store unreachable
    └── MirrorError             502  Live Feed write failed (only surfaced by reconcile)
"""

from typing import Optional


class OrderingError(Exception):
    """Base class for every failure raised by the ordering core."""

    status_code: int = 500
    error: str = "ordering_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error, "detail": self.message}


class ValidationError(OrderingError):
    """The order request was rejected before any write."""

    status_code = 400
    error = "validation_error"


class NotFoundError(OrderingError):
    """No order or product exists for the given identifier."""

    status_code = 404
    error = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class InvalidTransitionError(OrderingError):
    """The requested status is not the legal next status."""

    status_code = 409
    error = "invalid_transition"

    def __init__(self, current: str, requested: str, allowed: Optional[str] = None):
        message = f"Cannot move order from '{current}' to '{requested}'"
        if allowed:
            message += f" (next allowed status is '{allowed}')"
        super().__init__(message)
        self.current = current
        self.requested = requested
        self.allowed = allowed


class PersistenceError(OrderingError):
    """The authoritative Order Store could not complete the operation."""

    status_code = 503
    error = "persistence_error"


class MirrorError(OrderingError):
    """A Live Feed write failed after the authoritative write succeeded."""

    status_code = 502
    error = "mirror_error"
