"""Configuration package."""

from fieldledger.config.settings import (
    DefaultsSettings,
    Settings,
    StoreSettings,
    TrashSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DefaultsSettings",
    "Settings",
    "StoreSettings",
    "TrashSettings",
    "get_settings",
    "validate_all_settings",
]
