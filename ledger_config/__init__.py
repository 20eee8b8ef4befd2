"""
Ledger configuration.

The single public entry point for runtime settings is ``load_settings()``;
the default category catalogue is read by the seeding migration through
``load_category_catalogue()``.
"""

from ledger_config.settings import (
    CategoryCatalogue,
    DefaultCategory,
    LedgerSettings,
    load_category_catalogue,
    load_settings,
)

__all__ = [
    "CategoryCatalogue",
    "DefaultCategory",
    "LedgerSettings",
    "load_category_catalogue",
    "load_settings",
]
