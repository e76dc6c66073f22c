"""Store settings service.

Read path:
- Values are read through the Django cache (TTL ``STORE_SETTINGS_CACHE_TTL``,
  one hour by default).
- A missing or empty stored value falls back to the key's default.
- Unknown keys are logged and read as an empty string.

Write path:
- Only known keys can be written (``InvalidSettingKey``).
- Required keys cannot be emptied; NUMBER values must parse as a
  non-negative decimal; EMAIL values must be valid addresses. The store
  currency must be one the payment layer can charge in.
- Every write bumps a cache generation counter, which invalidates all
  cached reads at once (the cache keys embed the generation).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Dict, Iterable, Optional

import structlog
from django.conf import settings
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from modules.payments.currency import is_supported_currency
from modules.store_settings.constants import (
    CACHE_GENERATION_KEY,
    CACHE_PREFIX,
    DEFAULT_SETTINGS,
    SettingKey,
    SettingType,
)
from modules.store_settings.dtos import PricingConfig
from modules.store_settings.exceptions import InvalidSettingKey, SettingValidationError

if TYPE_CHECKING:
    from modules.store_settings.models import StoreSetting
    from modules.store_settings.repositories.interfaces import IStoreSettingRepository

logger = structlog.get_logger(__name__)


class SettingsStore:
    """Cached key-value access to store settings."""

    def __init__(
        self,
        repository: IStoreSettingRepository,
        ttl: Optional[int] = None,
    ) -> None:
        self._repo = repository
        self._ttl = ttl if ttl is not None else settings.STORE_SETTINGS_CACHE_TTL

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str:
        if key not in DEFAULT_SETTINGS:
            logger.warning("store_setting.unknown_key", key=key)
            return ""
        return self.get_settings([key])[key]

    def get_settings(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = list(keys)
        unknown = [k for k in keys if k not in DEFAULT_SETTINGS]
        if unknown:
            logger.warning("store_setting.unknown_key", keys=unknown)

        known = sorted(k for k in keys if k in DEFAULT_SETTINGS)
        stored = self._cached(
            "keys:" + ",".join(known),
            lambda: self._repo.get_values(known),
        )
        result = {k: "" for k in unknown}
        for key in known:
            result[key] = self._with_default(key, stored.get(key))
        return result

    def get_settings_by_category(self, category: str) -> Dict[str, str]:
        stored = self._cached(
            f"category:{category}",
            lambda: self._repo.get_values_by_category(category),
        )
        return {
            key: self._with_default(key, stored.get(key))
            for key, definition in DEFAULT_SETTINGS.items()
            if definition.category == category
        }

    def get_pricing_config(self) -> PricingConfig:
        values = self.get_settings(
            [
                SettingKey.STORE_NAME,
                SettingKey.CURRENCY,
                SettingKey.TAX_RATE,
                SettingKey.FREE_SHIPPING_THRESHOLD,
                SettingKey.STANDARD_SHIPPING_COST,
            ]
        )
        threshold = values[SettingKey.FREE_SHIPPING_THRESHOLD]
        return PricingConfig(
            store_name=values[SettingKey.STORE_NAME],
            currency=values[SettingKey.CURRENCY].upper(),
            tax_rate=self._as_decimal(SettingKey.TAX_RATE, values[SettingKey.TAX_RATE]),
            free_shipping_threshold=(
                int(self._as_decimal(SettingKey.FREE_SHIPPING_THRESHOLD, threshold))
                if threshold
                else None
            ),
            standard_shipping_cost=int(
                self._as_decimal(
                    SettingKey.STANDARD_SHIPPING_COST,
                    values[SettingKey.STANDARD_SHIPPING_COST],
                )
            ),
        )

    def get_currency(self) -> str:
        return self.get_setting(SettingKey.CURRENCY).upper()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_setting(self, key: str, value: str) -> StoreSetting:
        definition = DEFAULT_SETTINGS.get(key)
        if definition is None:
            raise InvalidSettingKey(f"Invalid setting key: {key}")

        value = (value or "").strip()
        if not value and definition.required:
            raise SettingValidationError(f"Setting {key} is required.")

        if value and definition.type == SettingType.NUMBER:
            try:
                number = Decimal(value)
            except InvalidOperation as exc:
                raise SettingValidationError(f"Setting {key} must be a number.") from exc
            if not number.is_finite() or number < 0:
                raise SettingValidationError(f"Setting {key} must be a positive number.")
        if value and definition.type == SettingType.EMAIL:
            try:
                validate_email(value)
            except ValidationError as exc:
                raise SettingValidationError(f"Setting {key} must be a valid email.") from exc
        if key == SettingKey.CURRENCY and not is_supported_currency(value):
            raise SettingValidationError(f"Currency {value} is not supported.")

        setting = self._repo.upsert(
            key,
            value,
            type=definition.type,
            category=definition.category,
            description=definition.description,
            is_required=definition.required,
        )
        self.invalidate()
        logger.info("store_setting.updated", key=key)
        return setting

    def invalidate(self) -> None:
        cache.add(CACHE_GENERATION_KEY, 1, timeout=None)
        cache.incr(CACHE_GENERATION_KEY)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cached(self, suffix: str, loader):
        cache.add(CACHE_GENERATION_KEY, 1, timeout=None)
        generation = cache.get(CACHE_GENERATION_KEY, 1)
        cache_key = f"{CACHE_PREFIX}:v{generation}:{suffix}"
        value = cache.get(cache_key)
        if value is None:
            value = loader()
            cache.set(cache_key, value, self._ttl)
        return value

    @staticmethod
    def _with_default(key: str, value: Optional[str]) -> str:
        if value is None or not value.strip():
            return DEFAULT_SETTINGS[key].default
        return value

    @staticmethod
    def _as_decimal(key: str, value: str) -> Decimal:
        try:
            return Decimal(value)
        except InvalidOperation:
            logger.warning("store_setting.invalid_number", key=key, value=value)
            return Decimal(DEFAULT_SETTINGS[key].default or "0")
