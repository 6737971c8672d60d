"""
Tests for diagnostics.
"""
from vendorcalc.debug import LedgerDebugger
from vendorcalc.store import HISTORY


def _broken_invoice(invoice_no):
    return {
        "invoice_no": invoice_no,
        "vendor_name": "Chai Point",
        "customer_name": "",
        "items": [{"name": "Tea", "price": 20, "quantity": 3, "total": 60}],
        "grand_total": 60,
        "discount": 10,
        "discount_amount": 6,
        "final_total": 60,
        "created_at": "2024-04-01T10:00:00.000Z",
    }


class TestLedgerDebugger:
    """Tests for LedgerDebugger."""

    def test_inspect_store(self, ledger, tea_bill):
        ledger.add_product("Tea", 20)
        ledger.save_bill(tea_bill)
        info = LedgerDebugger(ledger).inspect_store(verbose=True)
        assert info["products"] == 1
        assert info["invoices"] == 1
        assert info["invoice_counter"] == 1
        assert info["signed_in"] is False

    def test_clean_audit(self, ledger, tea_bill):
        ledger.save_bill(tea_bill)
        ledger.save_bill(tea_bill)
        report = LedgerDebugger(ledger).audit_invoices(verbose=True)
        assert report == {"checked": 2, "violations": {}, "duplicates": []}

    def test_audit_finds_broken_totals(self, ledger):
        ledger.store.insert(HISTORY, _broken_invoice("INV-009"))
        report = LedgerDebugger(ledger).audit_invoices()
        assert list(report["violations"]) == ["INV-009"]

    def test_audit_finds_duplicate_numbers(self, ledger, tea_bill):
        saved = ledger.save_bill(tea_bill)
        record = saved.model_dump(exclude={"id"})
        ledger.store.insert(HISTORY, record)
        report = LedgerDebugger(ledger).audit_invoices()
        assert report["duplicates"] == ["INV-001"]

    def test_connection_signed_out(self, ledger):
        assert LedgerDebugger(ledger).test_connection(verbose=True) == {"status": "signed_out"}

    def test_connection_signed_in(self, ledger, session):
        ledger.sign_in(session)
        assert LedgerDebugger(ledger).test_connection()["status"] == "connected"
