"""
Data models for VendorCalc.

This module contains the record types shared by the store, the replica and
the ledger, plus the SQLite schema definition.
"""
from pathlib import Path

from .records import (
    DEFAULT_CATEGORY,
    BillItem,
    Invoice,
    InvoiceDraft,
    Product,
    Session,
    Snapshot,
)

# Path to schema file
SCHEMA_FILE = Path(__file__).parent / "schema.sql"

# Bumped whenever schema.sql changes shape
SCHEMA_VERSION = 1


def get_schema_sql() -> str:
    """Get the full schema SQL."""
    return SCHEMA_FILE.read_text(encoding="utf-8")


__all__ = [
    "DEFAULT_CATEGORY",
    "BillItem",
    "Invoice",
    "InvoiceDraft",
    "Product",
    "Session",
    "Snapshot",
    "SCHEMA_FILE",
    "SCHEMA_VERSION",
    "get_schema_sql",
]
