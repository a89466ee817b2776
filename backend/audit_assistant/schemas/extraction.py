"""
Canonical Extraction — Pydantic Schemas

The canonical record is the one shape every downstream component reads,
whatever the extraction service returned:

  CanonicalExtraction
    ├── content           full text, page order
    ├── pages             page count
    ├── tables            ordered Table(row_count, column_count, cells)
    ├── key_value_pairs   key text → value text
    ├── entities          Entity(content, category?, confidence? ∈ [0, 1])
    └── document          InvoiceRecord | ReceiptRecord | None  (discriminated on `kind`)

Design decisions:
  - Collections are never None; an absent source collection is empty.
  - Optional extracted fields are None in memory and omitted when
    serialized (`model_dump(exclude_none=True)`); absence is never 0 or "".
  - Records are frozen. Re-analysis produces a new version, never an edit.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Extraction profiles
# ---------------------------------------------------------------------------

class ExtractionProfile(str, Enum):
    """Named extraction mode, mapped to a prebuilt service model."""
    GENERIC = "generic"
    INVOICE = "invoice"
    RECEIPT = "receipt"

    @property
    def model_id(self) -> str:
        return _PROFILE_MODELS[self]


_PROFILE_MODELS: dict[ExtractionProfile, str] = {
    ExtractionProfile.GENERIC: "prebuilt-document",
    ExtractionProfile.INVOICE: "prebuilt-invoice",
    ExtractionProfile.RECEIPT: "prebuilt-receipt",
}


def infer_profile(filename: str | None, content_type: str | None) -> ExtractionProfile:
    """
    Pick a profile from upload metadata.
    Only PDFs are routed to the invoice / receipt models; the file name decides.
    """
    if content_type == "application/pdf" and filename:
        lowered = filename.lower()
        if "invoice" in lowered:
            return ExtractionProfile.INVOICE
        if "receipt" in lowered:
            return ExtractionProfile.RECEIPT
    return ExtractionProfile.GENERIC


# ---------------------------------------------------------------------------
# Generic structure
# ---------------------------------------------------------------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TableCell(_Frozen):
    row_index:    int
    column_index: int
    content:      str = ""


class Table(_Frozen):
    row_count:    int
    column_count: int
    cells:        tuple[TableCell, ...] = ()


class Entity(_Frozen):
    content:    str
    category:   str | None   = None
    confidence: float | None = Field(None, ge=0.0, le=1.0)


# ---------------------------------------------------------------------------
# Profile-specific records
# ---------------------------------------------------------------------------

class InvoiceLineItem(_Frozen):
    description: str | None   = None
    quantity:    float | None = None
    unit_price:  float | None = None
    amount:      float | None = None


class InvoiceRecord(_Frozen):
    kind: Literal["invoice"] = "invoice"

    invoice_id:       str | None   = None
    invoice_date:     str | None   = None
    due_date:         str | None   = None
    vendor_name:      str | None   = None
    vendor_address:   str | None   = None
    customer_name:    str | None   = None
    customer_address: str | None   = None
    subtotal:         float | None = None
    total_tax:        float | None = None
    invoice_total:    float | None = None
    currency:         str | None   = None
    items:            tuple[InvoiceLineItem, ...] = ()


class ReceiptLineItem(_Frozen):
    name:        str | None   = None
    quantity:    float | None = None
    price:       float | None = None
    total_price: float | None = None


class ReceiptRecord(_Frozen):
    kind: Literal["receipt"] = "receipt"

    merchant_name:    str | None   = None
    merchant_address: str | None   = None
    transaction_date: str | None   = None
    transaction_time: str | None   = None
    subtotal:         float | None = None
    tax:              float | None = None
    total:            float | None = None
    items:            tuple[ReceiptLineItem, ...] = ()


DocumentTypeRecord = Annotated[Union[InvoiceRecord, ReceiptRecord], Field(discriminator="kind")]

# Fields whose absence reduces confidence in the derived signals
REQUIRED_FIELDS: dict[ExtractionProfile, tuple[str, ...]] = {
    ExtractionProfile.GENERIC: (),
    ExtractionProfile.INVOICE: ("invoice_id", "invoice_date", "vendor_name", "invoice_total"),
    ExtractionProfile.RECEIPT: ("merchant_name", "transaction_date", "total"),
}


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------

class CanonicalExtraction(_Frozen):
    profile:         ExtractionProfile
    model_id:        str
    content:         str                          = ""
    pages:           int                          = 0
    tables:          tuple[Table, ...]            = ()
    key_value_pairs: dict[str, str]               = Field(default_factory=dict)
    entities:        tuple[Entity, ...]           = ()
    document:        DocumentTypeRecord | None    = None

    @property
    def is_empty(self) -> bool:
        """True when nothing at all was extracted."""
        return not (
            self.content.strip()
            or self.tables
            or self.key_value_pairs
            or self.entities
            or self._document_fields()
        )

    def _document_fields(self) -> dict:
        if self.document is None:
            return {}
        return self.document.model_dump(exclude_none=True, exclude={"kind", "items"})

    def missing_required_fields(self) -> list[str]:
        """Required profile fields absent from the record, in declaration order."""
        required = REQUIRED_FIELDS[self.profile]
        if not required:
            return []
        present = self._document_fields()
        return [name for name in required if name not in present]

    def to_payload(self) -> dict:
        """JSON-safe dict with absent optional fields omitted."""
        return self.model_dump(mode="json", exclude_none=True)
