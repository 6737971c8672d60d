"""
Read-side queries over saved invoices: history search and sales summaries.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .models import Invoice

SORT_MODES = ("date-desc", "date-asc", "amount-desc", "amount-asc")
PERIODS = ("today", "week", "month")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp (Z suffix allowed) into an aware datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


def search_history(
    invoices: Iterable[Invoice],
    query: str = "",
    sort: str = "date-desc",
) -> list[Invoice]:
    """
    Filter and sort invoices.

    Args:
        invoices: Invoices to search
        query: Case-insensitive text matched against vendor, customer and invoice number
        sort: One of date-desc, date-asc, amount-desc, amount-asc (amount = final total)
    """
    if sort not in SORT_MODES:
        raise ValueError(f"Unknown sort mode: {sort}. Valid: {list(SORT_MODES)}")

    q = (query or "").strip().lower()
    matches = [
        inv for inv in invoices
        if not q
        or q in inv.vendor_name.lower()
        or q in inv.customer_name.lower()
        or q in inv.invoice_no.lower()
    ]

    if sort.startswith("date"):
        key = lambda inv: parse_timestamp(inv.created_at)
    else:
        key = lambda inv: inv.final_total
    return sorted(matches, key=key, reverse=sort.endswith("desc"))


def period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """Start of today, this week (Sunday) or this month, in local time."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}. Valid: {list(PERIODS)}")
    now = now or datetime.now()
    if now.tzinfo is None:
        # Naive values are local wall-clock time; stored timestamps are aware
        now = now.astimezone()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return start_of_today
    if period == "week":
        # weekday(): Monday=0 ... Sunday=6
        return start_of_today - timedelta(days=(start_of_today.weekday() + 1) % 7)
    return start_of_today.replace(day=1)


@dataclass
class ItemSummary:
    name: str
    total_qty: int = 0
    total_revenue: float = 0.0
    times_appeared: int = 0


@dataclass
class SalesSummary:
    period: str
    since: datetime
    total_revenue: float = 0.0
    total_invoices: int = 0
    items: list[ItemSummary] = field(default_factory=list)


def sales_summary(
    invoices: Iterable[Invoice],
    period: str = "today",
    now: Optional[datetime] = None,
) -> SalesSummary:
    """Revenue (pre-discount) and per-item totals for invoices since the period start."""
    since = period_start(period, now)
    selected = [inv for inv in invoices if parse_timestamp(inv.created_at) >= since]

    by_name: dict[str, ItemSummary] = {}
    for inv in selected:
        for item in inv.items:
            summary = by_name.setdefault(item.name, ItemSummary(name=item.name))
            summary.total_qty += item.quantity
            summary.total_revenue += item.total
            summary.times_appeared += 1

    return SalesSummary(
        period=period,
        since=since,
        total_revenue=sum(inv.grand_total for inv in selected),
        total_invoices=len(selected),
        items=sorted(by_name.values(), key=lambda s: s.total_revenue, reverse=True),
    )
