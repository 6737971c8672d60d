"""
Local store for VendorCalc.

This module contains the SQLite-backed system of record:
- Product, history and settings collections
- Change feed for presentation layers
- Legacy data migration
"""

from .base import (
    HISTORY,
    PRODUCTS,
    SETTINGS,
    ChangeEvent,
    LocalStore,
    get_connection,
    utc_now_iso,
)
from .migrations import migrate_legacy

__all__ = [
    "HISTORY",
    "PRODUCTS",
    "SETTINGS",
    "ChangeEvent",
    "LocalStore",
    "get_connection",
    "migrate_legacy",
    "utc_now_iso",
]
