"""Configuration package."""

from goal_ledger.config.settings import (
    AppSettings,
    ReconciliationSettings,
    Settings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ReconciliationSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "validate_all_settings",
]
