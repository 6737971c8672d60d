"""
Debugging and diagnostic utilities for VendorCalc.

Provides tools for:
- Testing remote connectivity
- Inspecting the local store
- Auditing saved invoices against their totals invariants
"""
from __future__ import annotations
from collections import Counter

from .billing import check_draft
from .ledger import VENDOR_NAME_KEY, Ledger
from .store import HISTORY, PRODUCTS


class LedgerDebugger:
    """
    Debugging utilities for a Ledger.

    Usage:
        debugger = LedgerDebugger(ledger)

        # Test remote connection for the active session
        debugger.test_connection()

        # Counts, counter and recent sync runs
        debugger.inspect_store()

        # Invariant violations and duplicate invoice numbers
        debugger.audit_invoices()
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger
        self.store = ledger.store

    def test_connection(self, verbose: bool = False) -> dict:
        """Test the remote replica for the active session."""
        session = self.ledger.session
        if session is None:
            result = {"status": "signed_out"}
        else:
            result = self.ledger.replica.test_connection(session.uid)

        if verbose:
            print("\n=== Remote Connection Test ===")
            print(f"Status: {result['status']}")
            if "url" in result:
                print(f"URL: {result['url']}")
            if result["status"] == "failed":
                print(f"Error: {result.get('error', 'Unknown')}")
        return result

    def inspect_store(self, verbose: bool = False) -> dict:
        info = {
            "db_path": self.ledger.config.db_path,
            "products": self.store.count(PRODUCTS),
            "invoices": self.store.count(HISTORY),
            "invoice_counter": self.ledger.allocator.peek(),
            "vendor_name": self.store.settings_get(VENDOR_NAME_KEY, ""),
            "signed_in": self.ledger.session is not None,
            "recent_syncs": self.store.recent_sync_runs(),
        }
        if verbose:
            print("\n=== Local Store ===")
            for key, value in info.items():
                if key != "recent_syncs":
                    print(f"{key}: {value}")
            for run in info["recent_syncs"]:
                print(
                    f"  sync #{run['id']} {run['status']}: pushed={run['rows_pushed']} "
                    f"pulled={run['rows_pulled']} failed={run['rows_failed']} at {run['started_at']}"
                )
        return info

    def audit_invoices(self, verbose: bool = False) -> dict:
        """
        Check every saved invoice.

        Returns:
            Dict with 'violations' (invoice_no -> problems) and 'duplicates'
        """
        invoices = self.ledger.history()
        violations: dict[str, list[str]] = {}
        for inv in invoices:
            problems = check_draft(inv)
            if problems:
                violations[inv.invoice_no] = problems

        counts = Counter(inv.invoice_no for inv in invoices)
        duplicates = sorted(no for no, n in counts.items() if n > 1)

        if verbose:
            print(f"\n=== Invoice Audit ({len(invoices)} invoices) ===")
            for invoice_no, problems in violations.items():
                print(f"{invoice_no}: {'; '.join(problems)}")
            if duplicates:
                print(f"Duplicate numbers: {', '.join(duplicates)}")
            if not violations and not duplicates:
                print("No problems found")

        return {"checked": len(invoices), "violations": violations, "duplicates": duplicates}
