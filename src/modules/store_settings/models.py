"""Key-value store settings persisted per key."""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel
from modules.store_settings.constants import SettingCategory, SettingType


class StoreSetting(BaseModel):
    """A single store setting row.

    Values are always stored as strings; the settings store parses
    them according to ``type``.
    """

    key = models.CharField(max_length=128, unique=True)
    value = models.TextField(blank=True, default="")
    type = models.CharField(
        max_length=20,
        choices=SettingType.choices,
        default=SettingType.STRING,
    )
    category = models.CharField(
        max_length=30,
        choices=SettingCategory.choices,
    )
    description = models.CharField(max_length=255, blank=True, default="")
    is_required = models.BooleanField(default=False)

    class Meta:
        db_table = "store_settings"
        ordering = ["category", "key"]
        indexes = [
            models.Index(fields=["category"], name="store_settings_category_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.key}={self.value!r}"
