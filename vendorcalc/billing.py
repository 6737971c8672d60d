"""
Bill drafting helpers.

Totals are computed once, when the draft is built, and then stored with
the invoice. Nothing downstream recomputes them.
"""
from __future__ import annotations
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Union

from .models import BillItem, InvoiceDraft, Product

Line = tuple[Union[Product, Mapping], int]


def discount_amount_for(grand_total: float, discount: float) -> float:
    """round(grand_total * discount / 100), half-up to a whole currency unit."""
    raw = Decimal(str(grand_total)) * Decimal(str(discount)) / Decimal(100)
    return float(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-6)


def build_draft(
    vendor_name: str,
    lines: Iterable[Line],
    customer_name: str = "",
    discount: float = 0,
) -> InvoiceDraft:
    """
    Build a draft from (product, quantity) pairs.

    Lines with a zero quantity are dropped. Each item snapshots the
    product's name and price as they are now.
    """
    items = []
    for product, quantity in lines:
        if quantity <= 0:
            continue
        if isinstance(product, Product):
            name, price = product.name, product.price
        else:
            name, price = product["name"], product["price"]
        items.append(BillItem(name=name, price=price, quantity=quantity, total=price * quantity))

    grand_total = sum(item.total for item in items)
    discount_amount = discount_amount_for(grand_total, discount)
    return InvoiceDraft(
        vendor_name=vendor_name,
        customer_name=customer_name,
        items=items,
        grand_total=grand_total,
        discount=discount,
        discount_amount=discount_amount,
        final_total=grand_total - discount_amount,
    )


def check_draft(draft: InvoiceDraft) -> list[str]:
    """Return every rule the draft breaks (empty list = valid)."""
    problems = []
    if not draft.vendor_name or not draft.vendor_name.strip():
        problems.append("vendor name is required")
    if not draft.items:
        problems.append("a bill needs at least one item")
    for idx, item in enumerate(draft.items, start=1):
        if not item.name.strip():
            problems.append(f"item {idx} has no name")
        if item.quantity <= 0:
            problems.append(f"item {idx} quantity must be positive")
        if item.price < 0:
            problems.append(f"item {idx} price must not be negative")
        if not _close(item.total, item.price * item.quantity):
            problems.append(f"item {idx} total {item.total} != price x quantity")
    if not 0 <= draft.discount <= 100:
        problems.append("discount must be between 0 and 100")
    if not _close(draft.grand_total, sum(item.total for item in draft.items)):
        problems.append("grand total does not match item totals")
    if not _close(draft.discount_amount, discount_amount_for(draft.grand_total, draft.discount)):
        problems.append("discount amount does not match discount")
    if not _close(draft.final_total, draft.grand_total - draft.discount_amount):
        problems.append("final total must equal grand total minus discount amount")
    return problems
