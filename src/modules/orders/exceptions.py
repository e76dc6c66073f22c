"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from typing import Any, Optional


class OrderNotFound(Exception):
    """The requested order does not exist."""


class InvalidOrderStatus(Exception):
    """An invalid status transition was attempted."""


class RefundNotAllowed(Exception):
    """The order is not in a state that can be refunded."""


class RefundExceedsTotal(Exception):
    """The requested refund would exceed the order total."""


class RefundFailed(Exception):
    """The provider rejected the refund; the order was left unchanged."""

    def __init__(self, message: str, error: Optional[Any] = None) -> None:
        super().__init__(message)
        self.error = error


class OrderNumberGenerationError(Exception):
    """No unique order number could be generated."""


class InvalidPaymentStatus(Exception):
    """A manual payment status change was rejected."""
