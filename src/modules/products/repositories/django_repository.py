"""Django ORM implementation of the Product repository.

Satisfies ``IProductRepository`` using Django's QuerySet API.
Error handling follows the Null Object pattern: look-ups return ``None``
(or omit the entry) instead of raising, and the Service Layer decides
how to translate a missing entity into a business error.

Stock mutations never read-modify-write in Python: they are single
``UPDATE`` statements built from ``F()`` expressions, so concurrent
payment completions and restocks cannot lose updates.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_many_by_ids(self, ids: Iterable[str]) -> Dict[str, Product]:
        """Batch fetch: one query regardless of cart size (avoids N+1).

        Malformed ids are skipped so they surface as missing products.
        """
        parsed = {}
        for raw in ids:
            try:
                parsed[raw] = Product._meta.pk.to_python(raw)
            except ValidationError:
                continue
        if not parsed:
            return {}
        by_pk = {p.id: p for p in Product.objects.filter(id__in=set(parsed.values()))}
        return {raw: by_pk[pk] for raw, pk in parsed.items() if pk in by_pk}

    # ------------------------------------------------------------------
    # Atomic stock mutations
    # ------------------------------------------------------------------

    def decrement_stock(self, id: str, quantity: int) -> bool:
        updated = Product.objects.filter(id=id, stock__isnull=False).update(
            stock=Greatest(F("stock") - quantity, Value(0)),
            updated_at=timezone.now(),
        )
        if updated:
            logger.info("product.stock_decremented", product_id=str(id), quantity=quantity)
        return bool(updated)

    def increment_stock(self, id: str, quantity: int) -> bool:
        updated = Product.objects.filter(id=id, stock__isnull=False).update(
            stock=F("stock") + quantity,
            updated_at=timezone.now(),
        )
        if updated:
            logger.info("product.stock_restored", product_id=str(id), quantity=quantity)
        return bool(updated)
