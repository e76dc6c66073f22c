"""Store settings DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PricingConfig(BaseModel):
    """Operational settings consumed by order totals and payments."""

    model_config = ConfigDict(frozen=True)

    store_name: str
    currency: str
    tax_rate: Decimal
    free_shipping_threshold: Optional[int] = None
    standard_shipping_cost: int
