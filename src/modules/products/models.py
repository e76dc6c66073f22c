"""Product catalogue model.

Business rules implemented:
- Price is stored in minor currency units and must be greater than zero.
- ``stock`` is nullable: ``NULL`` means unlimited stock (typical for
  digital goods).  A finite stock can never be negative.
- Only ``ACTIVE`` products can be purchased (enforced by checkout).
- Stock is only mutated by payment completion and cancellation, always via
  atomic ``F()`` expressions in the repository.
"""

from __future__ import annotations

import structlog
from django.core.exceptions import ValidationError
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    DRAFT = "DRAFT", "Draft"
    ARCHIVED = "ARCHIVED", "Archived"


class Product(BaseModel):
    """Product aggregate root."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.PositiveIntegerField(help_text="Price in minor units (cents).")
    compare_at_price = models.PositiveIntegerField(null=True, blank=True)
    stock = models.IntegerField(
        null=True,
        blank=True,
        help_text="Units available. Empty means unlimited.",
    )
    is_digital = models.BooleanField(default=False)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.DRAFT,
    )
    images = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(price__gt=0),
                name="products_price_positive",
            ),
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if self.stock is not None and self.stock < 0:
            raise ValidationError({"stock": "Stock cannot be negative."})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def is_purchasable(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    @property
    def has_unlimited_stock(self) -> bool:
        return self.stock is None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product_created",
                product_id=str(self.id),
                name=self.name,
                is_digital=self.is_digital,
            )

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"
