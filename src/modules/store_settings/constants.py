"""Store settings constants.

Every known key with its default value, type, category and whether it
is required.  Keys not listed here are rejected by the settings store.
"""

from __future__ import annotations

from typing import NamedTuple

from django.db import models


class SettingType(models.TextChoices):
    STRING = "STRING", "String"
    TEXT_AREA = "TEXT_AREA", "Text area"
    EMAIL = "EMAIL", "Email"
    NUMBER = "NUMBER", "Number"


class SettingCategory(models.TextChoices):
    STORE_IDENTITY = "STORE_IDENTITY", "Store identity"
    OPERATIONAL = "OPERATIONAL", "Operational"
    CONTENT = "CONTENT", "Content"
    BUSINESS = "BUSINESS", "Business"
    EMAIL_TEMPLATES = "EMAIL_TEMPLATES", "Email templates"
    APPEARANCE = "APPEARANCE", "Appearance"


class SettingKey:
    STORE_NAME = "store.identity.name"
    STORE_DESCRIPTION = "store.identity.description"
    CONTACT_EMAIL = "store.identity.contact.email"
    CURRENCY = "store.operational.currency"
    TAX_RATE = "store.operational.tax_rate"
    FREE_SHIPPING_THRESHOLD = "store.operational.free_shipping_threshold"
    STANDARD_SHIPPING_COST = "store.operational.standard_shipping_cost"


class SettingDefinition(NamedTuple):
    default: str
    type: str
    category: str
    description: str
    required: bool


DEFAULT_SETTINGS: dict[str, SettingDefinition] = {
    SettingKey.STORE_NAME: SettingDefinition(
        "My Store",
        SettingType.STRING,
        SettingCategory.STORE_IDENTITY,
        "Store name shown to customers and on payment pages",
        True,
    ),
    SettingKey.STORE_DESCRIPTION: SettingDefinition(
        "Welcome to our amazing store.",
        SettingType.TEXT_AREA,
        SettingCategory.STORE_IDENTITY,
        "Short store description",
        False,
    ),
    SettingKey.CONTACT_EMAIL: SettingDefinition(
        "contact@mystore.com",
        SettingType.EMAIL,
        SettingCategory.STORE_IDENTITY,
        "Customer contact email",
        True,
    ),
    SettingKey.CURRENCY: SettingDefinition(
        "USD",
        SettingType.STRING,
        SettingCategory.OPERATIONAL,
        "Store currency (ISO 4217)",
        True,
    ),
    SettingKey.TAX_RATE: SettingDefinition(
        "17",
        SettingType.NUMBER,
        SettingCategory.OPERATIONAL,
        "Tax rate in percent",
        True,
    ),
    SettingKey.FREE_SHIPPING_THRESHOLD: SettingDefinition(
        "",
        SettingType.NUMBER,
        SettingCategory.OPERATIONAL,
        "Subtotal (minor units) from which shipping is free; empty disables it",
        False,
    ),
    SettingKey.STANDARD_SHIPPING_COST: SettingDefinition(
        "2500",
        SettingType.NUMBER,
        SettingCategory.OPERATIONAL,
        "Flat shipping cost in minor units",
        True,
    ),
}

CACHE_PREFIX = "store_settings"
CACHE_GENERATION_KEY = f"{CACHE_PREFIX}:generation"
