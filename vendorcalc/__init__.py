"""
VendorCalc - local-first billing ledger with an optional cloud replica.

This package keeps products and invoices in an on-device SQLite store and
mirrors them, best effort, to a per-user remote document store.

Key Features:
- Local store as the system of record; fully usable offline
- Atomic INV-### invoice numbering that never repeats
- Fire-and-forget remote mirroring of every mutation
- Push-then-pull reconciliation on sign-in / session restore
- JSON backup export and destructive, validated import
- Sales summaries and history search

Usage:
    from vendorcalc import Ledger, build_draft

    with Ledger() as ledger:
        tea = ledger.add_product("Tea", 20, "General")
        ledger.save_vendor_name("Chai Point")
        invoice = ledger.save_bill(build_draft("Chai Point", [(tea, 3)], discount=10))

    # Command line
    python -m vendorcalc status
"""

__version__ = "1.0.0"

from .billing import build_draft
from .config import VendorCalcConfig
from .ledger import Ledger
from .models import BillItem, Invoice, InvoiceDraft, Product, Session, Snapshot

__all__ = [
    "BillItem",
    "Invoice",
    "InvoiceDraft",
    "Ledger",
    "Product",
    "Session",
    "Snapshot",
    "VendorCalcConfig",
    "build_draft",
    "__version__",
]
