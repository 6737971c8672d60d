"""
Tests for bill drafting and draft checks.
"""
from vendorcalc.billing import build_draft, check_draft, discount_amount_for
from vendorcalc.models import BillItem, InvoiceDraft, Product


class TestDiscountAmount:
    """Tests for discount rounding."""

    def test_simple_percentage(self):
        assert discount_amount_for(60, 10) == 6

    def test_zero_discount(self):
        assert discount_amount_for(60, 0) == 0

    def test_rounds_half_up(self):
        """Test that .5 rounds away from zero, not to even."""
        assert discount_amount_for(25, 10) == 3
        assert discount_amount_for(45, 10) == 5

    def test_rounds_down_below_half(self):
        assert discount_amount_for(33, 10) == 3


class TestBuildDraft:
    """Tests for build_draft."""

    def test_totals(self):
        """Test the 3 x Tea @ 20 with 10% discount example."""
        draft = build_draft("Chai Point", [({"name": "Tea", "price": 20}, 3)], discount=10)
        assert draft.grand_total == 60
        assert draft.discount_amount == 6
        assert draft.final_total == 54
        assert draft.items == [BillItem(name="Tea", price=20, quantity=3, total=60)]

    def test_accepts_products(self):
        tea = Product(id=1, name="Tea", price=20)
        bun = Product(id=2, name="Bun", price=15, category="Snacks")
        draft = build_draft("Chai Point", [(tea, 2), (bun, 1)])
        assert draft.grand_total == 55
        assert draft.final_total == 55
        assert [i.name for i in draft.items] == ["Tea", "Bun"]

    def test_drops_zero_quantity_lines(self):
        draft = build_draft(
            "Chai Point",
            [({"name": "Tea", "price": 20}, 0), ({"name": "Coffee", "price": 30}, 1)],
        )
        assert [i.name for i in draft.items] == ["Coffee"]

    def test_built_draft_passes_checks(self, tea_bill):
        assert check_draft(tea_bill) == []


class TestCheckDraft:
    """Tests for check_draft."""

    def _draft(self, **overrides):
        data = {
            "vendor_name": "Chai Point",
            "items": [{"name": "Tea", "price": 20, "quantity": 3, "total": 60}],
            "grand_total": 60,
            "discount": 10,
            "discount_amount": 6,
            "final_total": 54,
        }
        data.update(overrides)
        return InvoiceDraft.model_validate(data)

    def test_valid(self):
        assert check_draft(self._draft()) == []

    def test_empty_items(self):
        problems = check_draft(self._draft(items=[], grand_total=0, discount_amount=0, final_total=0))
        assert any("at least one item" in p for p in problems)

    def test_missing_vendor(self):
        problems = check_draft(self._draft(vendor_name="  "))
        assert any("vendor" in p for p in problems)

    def test_final_total_mismatch(self):
        problems = check_draft(self._draft(final_total=60))
        assert any("final total" in p for p in problems)

    def test_discount_amount_mismatch(self):
        problems = check_draft(self._draft(discount_amount=5, final_total=55))
        assert any("discount amount" in p for p in problems)

    def test_discount_out_of_range(self):
        problems = check_draft(self._draft(discount=150))
        assert any("between 0 and 100" in p for p in problems)

    def test_item_total_mismatch(self):
        items = [{"name": "Tea", "price": 20, "quantity": 3, "total": 50}]
        problems = check_draft(self._draft(items=items))
        assert any("price x quantity" in p for p in problems)

    def test_non_positive_quantity(self):
        items = [{"name": "Tea", "price": 20, "quantity": 0, "total": 0}]
        problems = check_draft(self._draft(items=items, grand_total=0, discount_amount=0, final_total=0))
        assert any("quantity must be positive" in p for p in problems)

    def test_float_noise_tolerated(self):
        """Test that binary float artefacts do not count as mismatches."""
        items = [{"name": "Chips", "price": 0.1, "quantity": 3, "total": 0.30000000000000004}]
        draft = self._draft(items=items, grand_total=0.3, discount=0, discount_amount=0, final_total=0.3)
        assert check_draft(draft) == []
