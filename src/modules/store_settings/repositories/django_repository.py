"""Django ORM implementation of the store setting repository."""

from __future__ import annotations

from typing import Dict, Iterable

import structlog
from django.db import transaction

from modules.store_settings.models import StoreSetting
from modules.store_settings.repositories.interfaces import IStoreSettingRepository

logger = structlog.get_logger(__name__)


class StoreSettingDjangoRepository(IStoreSettingRepository):
    def get_values(self, keys: Iterable[str]) -> Dict[str, str]:
        rows = StoreSetting.objects.filter(key__in=list(keys)).values_list("key", "value")
        return dict(rows)

    def get_values_by_category(self, category: str) -> Dict[str, str]:
        rows = StoreSetting.objects.filter(category=category).values_list("key", "value")
        return dict(rows)

    @transaction.atomic
    def upsert(self, key: str, value: str, **metadata: object) -> StoreSetting:
        setting, created = StoreSetting.objects.update_or_create(
            key=key,
            defaults={"value": value, **metadata},
        )
        logger.info("store_setting.upserted", key=key, created=created)
        return setting
