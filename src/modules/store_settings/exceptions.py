"""Store settings exceptions."""

from __future__ import annotations


class InvalidSettingKey(Exception):
    """The key is not one of the known store settings."""


class SettingValidationError(Exception):
    """The value is empty for a required key or does not match its type."""
