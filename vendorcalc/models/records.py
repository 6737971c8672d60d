from __future__ import annotations
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_CATEGORY = "General"


class Product(BaseModel):
    id: Optional[int] = None
    name: str
    price: float
    category: str = DEFAULT_CATEGORY

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> Any:
        # Older backups and remote docs may carry no category at all
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_CATEGORY
        return value


class BillItem(BaseModel):
    """Point-in-time copy of a sold line; never linked to a live Product."""
    model_config = ConfigDict(frozen=True)

    name: str
    price: float
    quantity: int
    total: float


class InvoiceDraft(BaseModel):
    vendor_name: str
    customer_name: str = ""
    items: list[BillItem]
    grand_total: float
    discount: float = 0.0
    discount_amount: float = 0.0
    final_total: float

    @field_validator("customer_name", mode="before")
    @classmethod
    def _blank_customer(cls, value: Any) -> Any:
        return "" if value is None else value


class Invoice(InvoiceDraft):
    """A saved bill. Immutable once persisted."""
    id: Optional[int] = None
    invoice_no: str
    created_at: str


class Snapshot(BaseModel):
    """Full export of both collections (`history` holds the invoices)."""
    products: list[Product]
    history: list[Invoice]


class Session(BaseModel):
    """Authenticated identity handed over by the external auth layer."""
    uid: str
    id_token: str
    display_name: Optional[str] = None
