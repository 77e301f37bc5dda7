"""
Order Status State Machine

    pending → preparing → ready → delivered

Forward-only, one step at a time. ``delivered`` is terminal: asking for
``delivered`` again is a no-op, anything else is rejected.
"""

from app.core.exceptions import InvalidTransitionError, ValidationError
from app.models import OrderStatus

NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.DELIVERED,
    OrderStatus.DELIVERED: OrderStatus.DELIVERED,
}

TERMINAL_STATUSES = frozenset(
    status for status, following in NEXT_STATUS.items() if status == following
)


def parse_status(value) -> OrderStatus:
    """Turn a client-supplied status into an ``OrderStatus``."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        valid = [s.value for s in OrderStatus]
        raise ValidationError(f"Invalid status '{value}'. Options: {valid}")


def next_status(current: OrderStatus) -> OrderStatus:
    return NEXT_STATUS[current]


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    """
    Validate a transition request.

    Returns:
        True if the order must move to ``requested``, False for the
        terminal no-op (``delivered`` → ``delivered``).

    Raises:
        InvalidTransitionError: ``requested`` is not ``next(current)``.
    """
    allowed = NEXT_STATUS[current]
    if requested != allowed:
        raise InvalidTransitionError(
            current.value,
            requested.value,
            None if is_terminal(current) else allowed.value,
        )
    return requested != current
