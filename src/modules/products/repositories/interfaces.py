"""Product repository interface.

Extends ``IRepository[Product]`` with the batch look-up used by stock
validation and the atomic stock mutations used by payment completion
and cancellation.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def get_many_by_ids(self, ids: Iterable[str]) -> Dict[str, Product]:
        """Fetch several products in a single query, keyed by the ids as given."""

    @abstractmethod
    def decrement_stock(self, id: str, quantity: int) -> bool:
        """Atomically decrement finite stock, never below zero.

        Returns ``False`` when the product has unlimited stock or does
        not exist (nothing was updated).
        """

    @abstractmethod
    def increment_stock(self, id: str, quantity: int) -> bool:
        """Atomically restore finite stock.

        Products with unlimited stock are left untouched and ``False`` is
        returned.
        """
