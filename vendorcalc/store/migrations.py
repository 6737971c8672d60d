"""
One-shot migration of pre-SQLite data into the local store.

The legacy format is a single JSON document:

    {
        "products": [{"id": 1, "name": "Tea", "price": 20}],
        "history": [{"id": 1712000000000, "vendor_name": "...", "items": [...],
                     "grand_total": 60, "created_at": "..."}],
        "vendorName": "Chai Point"
    }

Legacy products had no category and legacy bills had no invoice number,
customer or discount; those are filled in here.
"""
from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Optional, Union
from loguru import logger

from ..models import DEFAULT_CATEGORY
from .base import HISTORY, PRODUCTS, LocalStore

MIGRATED_KEY = "legacyMigrated"
VENDOR_NAME_KEY = "vendorName"


def legacy_invoice_no(legacy_id: Any) -> str:
    """Derive INV-### from the last three digits of a legacy id."""
    return f"INV-{str(legacy_id)[-3:].zfill(3)}"


def _legacy_invoice(raw: dict) -> dict:
    grand_total = float(raw.get("grand_total") or 0)
    return {
        "invoice_no": legacy_invoice_no(raw.get("id", "")),
        "vendor_name": raw.get("vendor_name") or "",
        "customer_name": "",
        "items": [
            {
                "name": item["name"],
                "price": item["price"],
                "quantity": item["quantity"],
                "total": item["total"],
            }
            for item in raw.get("items") or []
        ],
        "grand_total": grand_total,
        "discount": 0,
        "discount_amount": 0,
        "final_total": grand_total,
        "created_at": raw.get("created_at") or "",
    }


def migrate_legacy(store: LocalStore, source: Union[str, Path, dict, None]) -> Optional[dict]:
    """
    Import legacy data once.

    Args:
        store: Target local store
        source: Path to the legacy JSON file, or the already-parsed document

    Returns:
        Dict of migrated counts, or None when skipped or failed
    """
    if store.settings_get(MIGRATED_KEY):
        logger.debug("Legacy data already migrated, skipping")
        return None
    if source is None:
        return None

    # sequence imports this package, so import it at call time
    from ..sequence import SequenceAllocator

    try:
        if isinstance(source, dict):
            data = source
        else:
            data = json.loads(Path(source).read_text(encoding="utf-8"))

        products = data.get("products") or []
        history = data.get("history") or []
        vendor_name = data.get("vendorName")

        with store.transaction():
            for p in products:
                store.insert(PRODUCTS, {
                    "name": p["name"],
                    "price": float(p["price"]),
                    "category": DEFAULT_CATEGORY,
                })
            for h in history:
                store.insert(HISTORY, _legacy_invoice(h))
            if vendor_name:
                store.settings_put(VENDOR_NAME_KEY, vendor_name)
            # Numbering resumes after the migrated bills, never below what was issued
            SequenceAllocator(store).advance_to(len(history))
            store.settings_put(MIGRATED_KEY, "1")

    except Exception as e:
        logger.error(f"Legacy migration failed: {e}")
        return None

    logger.info(f"Migrated {len(products)} legacy products and {len(history)} legacy invoices")
    return {"products": len(products), "history": len(history)}
