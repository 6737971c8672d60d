"""
Invoice number allocation.

Numbers come from the durable `invoiceCounter` setting and are formatted
as INV-### (zero padded to three digits, wider past 999).
"""
from __future__ import annotations
import re
import threading
from typing import Iterable, Optional
from loguru import logger

from .errors import StorageError
from .store import LocalStore

COUNTER_KEY = "invoiceCounter"
INVOICE_PREFIX = "INV-"
INVOICE_NO_RE = re.compile(r"^INV-(\d+)$")


def format_invoice_no(number: int) -> str:
    return f"{INVOICE_PREFIX}{number:03d}"


def parse_invoice_no(invoice_no: str) -> Optional[int]:
    """Number behind an INV-### string, or None if it has another shape."""
    match = INVOICE_NO_RE.match(invoice_no or "")
    return int(match.group(1)) if match else None


class SequenceAllocator:
    """
    Issues strictly increasing invoice numbers for one device.

    The read-increment-write runs under a process lock and inside an
    IMMEDIATE transaction, so concurrent callers (threads, or processes
    sharing the database file) never observe the same counter value.
    The counter is never decremented; gaps are allowed, duplicates are not.
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self._lock = threading.Lock()

    def peek(self) -> int:
        """Return the last issued number (0 if none)."""
        return self._parse(self.store.settings_get(COUNTER_KEY))

    def next_number(self) -> int:
        with self._lock:
            with self.store.transaction():
                current = self._parse(self.store.settings_get(COUNTER_KEY))
                nxt = current + 1
                self.store.settings_put(COUNTER_KEY, nxt)
        logger.debug(f"Allocated invoice number {nxt}")
        return nxt

    def next_invoice_no(self) -> str:
        return format_invoice_no(self.next_number())

    def advance_to(self, number: int) -> int:
        """
        Raise the counter to at least `number`; never lowers it.

        Used when invoices arrive from elsewhere (import, pull, legacy data)
        so later allocations cannot repeat their numbers.
        """
        with self.store.transaction():
            current = self._parse(self.store.settings_get(COUNTER_KEY))
            if number > current:
                self.store.settings_put(COUNTER_KEY, number)
                logger.info(f"Invoice counter advanced from {current} to {number}")
                return number
        return current

    def advance_past(self, invoice_nos: Iterable[str]) -> int:
        """Advance the counter past the highest INV-### in `invoice_nos`."""
        numbers = [n for n in map(parse_invoice_no, invoice_nos) if n is not None]
        return self.advance_to(max(numbers, default=0))

    @staticmethod
    def _parse(value) -> int:
        # Restarting from zero would hand out duplicates, so refuse instead
        try:
            number = int(value or 0)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Invoice counter is corrupt: {value!r}") from e
        if number < 0:
            raise StorageError(f"Invoice counter is negative: {number}")
        return number
