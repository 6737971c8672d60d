"""
Tests for export/import and backup files.
"""
import json
from datetime import date

import pytest

from vendorcalc.billing import build_draft
from vendorcalc.errors import ImportFormatError
from vendorcalc.snapshot import default_backup_name, read_snapshot, write_snapshot


def _product_key(p):
    return (p.name, p.price, p.category)


def _invoice_key(inv):
    return (inv.invoice_no, inv.created_at, inv.final_total, tuple(inv.items))


@pytest.fixture
def populated(ledger):
    tea = ledger.add_product("Tea", 20)
    bun = ledger.add_product("Bun", 15, "Snacks")
    ledger.save_bill(build_draft("Chai Point", [(tea, 3)], discount=10))
    ledger.save_bill(build_draft("Chai Point", [(tea, 1), (bun, 2)], customer_name="Ravi"))
    return ledger


class TestExportImport:
    """Tests for Ledger.export_snapshot / import_snapshot."""

    def test_round_trip_preserves_content(self, populated):
        """Test that import(export()) keeps every record, ignoring ids."""
        before = populated.export_snapshot()
        populated.import_snapshot(before)
        after = populated.export_snapshot()

        assert sorted(map(_product_key, after.products)) == sorted(map(_product_key, before.products))
        assert sorted(map(_invoice_key, after.history)) == sorted(map(_invoice_key, before.history))

    def test_import_assigns_fresh_ids(self, populated):
        old_ids = {p.id for p in populated.products()}
        populated.import_snapshot(populated.export_snapshot())
        new_ids = {p.id for p in populated.products()}
        assert old_ids.isdisjoint(new_ids)

    def test_import_from_mapping(self, populated):
        data = populated.export_snapshot().model_dump(mode="json")
        assert populated.import_snapshot(data) == (2, 2)

    def test_import_keeps_invoice_numbers(self, populated):
        numbers = {inv.invoice_no for inv in populated.history()}
        populated.import_snapshot(populated.export_snapshot())
        assert {inv.invoice_no for inv in populated.history()} == numbers

    def test_import_does_not_reset_counter(self, populated, tea_bill):
        populated.import_snapshot({"products": [], "history": []})
        assert populated.save_bill(tea_bill).invoice_no == "INV-003"

    def test_imported_numbers_not_reissued(self, ledger, tea_bill):
        """Test that numbering continues past the highest imported invoice."""
        invoice = ledger.save_bill(tea_bill).model_dump()
        invoice["invoice_no"] = "INV-010"
        ledger.import_snapshot({"products": [], "history": [invoice]})
        assert ledger.save_bill(tea_bill).invoice_no == "INV-011"

    def test_empty_import_clears_everything(self, populated):
        assert populated.import_snapshot({"products": [], "history": []}) == (0, 0)
        snapshot = populated.export_snapshot()
        assert snapshot.products == []
        assert snapshot.history == []

    def test_export_orders_history_newest_first(self, populated):
        history = populated.export_snapshot().history
        assert [inv.invoice_no for inv in history] == ["INV-002", "INV-001"]

    def test_import_defaults_missing_category(self, ledger):
        ledger.import_snapshot({"products": [{"name": "Tea", "price": 20}], "history": []})
        assert ledger.products()[0].category == "General"

    @pytest.mark.parametrize("bad", [
        [],
        "backup",
        {"products": []},
        {"history": []},
        {"products": {}, "history": []},
        {"products": [], "history": "none"},
        {"products": [{"name": "Tea"}], "history": []},
        {"products": [], "history": [{"vendor_name": "Chai Point"}]},
    ])
    def test_invalid_snapshot_leaves_data_untouched(self, populated, bad):
        """Test that malformed input raises before anything is deleted."""
        before = populated.export_snapshot()
        with pytest.raises(ImportFormatError):
            populated.import_snapshot(bad)
        assert populated.export_snapshot() == before


class TestBackupFiles:
    """Tests for reading and writing backup files."""

    def test_default_name(self):
        assert default_backup_name(date(2024, 4, 1)) == "vendorcalc-backup-01-04-2024.json"

    def test_write_and_read(self, populated, tmp_path):
        path = write_snapshot(populated.export_snapshot(), tmp_path / "backup.json")
        data = read_snapshot(path)
        assert "exportedAt" in data
        assert len(data["products"]) == 2
        assert len(data["history"]) == 2

    def test_written_file_imports(self, populated, tmp_path):
        path = write_snapshot(populated.export_snapshot(), tmp_path / "backup.json")
        assert populated.import_snapshot(read_snapshot(path)) == (2, 2)

    def test_read_invalid_json(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ImportFormatError):
            read_snapshot(path)

    def test_read_non_object(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text(json.dumps([1, 2]), encoding="utf-8")
        with pytest.raises(ImportFormatError):
            read_snapshot(path)

    def test_read_missing_file(self, tmp_path):
        with pytest.raises(ImportFormatError):
            read_snapshot(tmp_path / "missing.json")
