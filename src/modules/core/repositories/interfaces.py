"""Base contract for aggregate repositories.

Services receive repositories through their constructors and never touch
the ORM themselves; tests swap in subclasses to replay stale reads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Lookup shared by every aggregate addressed by its UUID."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Return the aggregate, or ``None`` for unknown or malformed ids."""
