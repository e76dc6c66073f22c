"""Store setting repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable

if TYPE_CHECKING:
    from modules.store_settings.models import StoreSetting


class IStoreSettingRepository(ABC):
    """Repository contract for key-value store settings, addressed by key."""

    @abstractmethod
    def get_values(self, keys: Iterable[str]) -> Dict[str, str]:
        """Return stored values for ``keys`` (missing keys are omitted)."""

    @abstractmethod
    def get_values_by_category(self, category: str) -> Dict[str, str]:
        """Return stored values for every key in ``category``."""

    @abstractmethod
    def upsert(self, key: str, value: str, **metadata: object) -> StoreSetting:
        """Create or update the row for ``key``."""
