"""Order repository interface.

Extends ``IRepository[Order]`` with the methods required by the Order
aggregate: atomic creation with items, status history tracking,
look-up by provider payment id and the conditional updates used by
payment reconciliation.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` holds the Order field values plus ``items``: a list of
        dicts with ``product_id``, ``product_name``, ``price``, ``quantity``.
        """

    @abstractmethod
    def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        """Retrieve an order by its provider payment reference."""

    @abstractmethod
    def save(self, entity: Order) -> Order:
        """Persist an order and its pending domain events."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding a row-level lock."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def store_events(self, entity: Order) -> None:
        """Persist pending domain events of an order to the outbox."""

    @abstractmethod
    def claim_payment_completion(self, id: str, values: Dict[str, Any]) -> bool:
        """Apply ``values`` only if payment is not yet COMPLETED.

        Returns ``True`` when this call performed the update.
        """

    @abstractmethod
    def mark_payment_failed(self, id: str, payment_status: str) -> bool:
        """Cancel the order unless its payment already COMPLETED or REFUNDED."""
