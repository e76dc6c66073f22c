"""Domain events for the Orders bounded context.

Persisted to the outbox with the order and published after commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when checkout persists a new order."""

    order_number: str = ""
    total: int = 0
    is_digital: bool = False


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an admin moves an order along the state machine."""

    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class OrderPaymentCompleted(DomainEvent):
    """Raised exactly once per order, by whichever trigger completed payment.

    Subscribers send the confirmation email and deliver digital goods.
    """

    order_number: str = ""
    transaction_id: str = ""
    paid_amount: int = 0
    payer_email: Optional[str] = None
    is_digital: bool = False


@dataclass(frozen=True)
class OrderPaymentFailed(DomainEvent):
    """Raised when an unpaid order is cancelled because payment failed."""

    payment_status: str = ""
    reason: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled (with or without refund)."""

    reason: str = ""
    refund_id: Optional[str] = None
    restocked: bool = False


@dataclass(frozen=True)
class OrderRefunded(DomainEvent):
    """Raised after a provider refund is recorded on the order."""

    refund_id: str = ""
    amount: int = 0
    total_refunded: int = 0
    full_refund: bool = False
