"""
Normalizer — raw analyze result → CanonicalExtraction

Pure function; no I/O, never raises on missing optional data.

Raw shape (analyzeResult, abridged):

    {
      "content": "...",
      "pages":         [{...}, ...],
      "tables":        [{"rowCount", "columnCount", "cells": [{"rowIndex", "columnIndex", "content"}]}],
      "keyValuePairs": [{"key": {"content"}, "value": {"content"}}],
      "entities":      [{"category", "content", "confidence"}],
      "documents":     [{"docType", "fields": {"InvoiceId": {"type": "string", "valueString": ...}}}]
    }

Typed field values are read from the type-specific slot (valueString,
valueNumber, valueCurrency.amount, valueDate, ...) and fall back to the
field's raw `content`. Absent fields stay None, never 0 or "".
"""

from __future__ import annotations

import logging
import re
from typing import Any, Mapping

from audit_assistant.core.errors import UnsupportedProfileError
from audit_assistant.schemas.extraction import (
    CanonicalExtraction,
    Entity,
    ExtractionProfile,
    InvoiceLineItem,
    InvoiceRecord,
    ReceiptLineItem,
    ReceiptRecord,
    Table,
    TableCell,
)

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")


# ---------------------------------------------------------------------------
# Field value readers
# ---------------------------------------------------------------------------

def _field(fields: Mapping[str, Any], *names: str) -> Mapping[str, Any] | None:
    """First present field among `names` (service versions rename a few)."""
    for name in names:
        value = fields.get(name)
        if isinstance(value, Mapping):
            return value
    return None


def _as_text(f: Mapping[str, Any] | None) -> str | None:
    if f is None:
        return None
    for slot in ("valueString", "valueDate", "valueTime", "valuePhoneNumber", "valueCountryRegion"):
        v = f.get(slot)
        if v not in (None, ""):
            return str(v)
    # Addresses: the flattened source text reads better than the parsed parts
    content = f.get("content")
    if content not in (None, ""):
        return str(content).replace("\n", ", ")
    v = f.get("value")
    if isinstance(v, (str, int, float)) and v != "":
        return str(v)
    return None


def _as_number(f: Mapping[str, Any] | None) -> float | None:
    if f is None:
        return None
    currency = f.get("valueCurrency")
    if isinstance(currency, Mapping) and currency.get("amount") is not None:
        return float(currency["amount"])
    for slot in ("valueNumber", "valueInteger"):
        if f.get(slot) is not None:
            return float(f[slot])
    v = f.get("value")
    if isinstance(v, Mapping) and v.get("amount") is not None:
        return float(v["amount"])
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return float(v)
    content = f.get("content")
    if isinstance(content, str):
        match = _NUMBER_RE.search(content)
        if match:
            return float(match.group(0).replace(",", ""))
    return None


def _currency_code(f: Mapping[str, Any] | None) -> str | None:
    if f is None:
        return None
    currency = f.get("valueCurrency") or f.get("value")
    if isinstance(currency, Mapping):
        return currency.get("currencyCode") or currency.get("currencySymbol")
    return None


def _array_objects(f: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    """Each element's object fields from an array-typed field."""
    if f is None:
        return []
    items = f.get("valueArray") or f.get("values") or []
    out: list[Mapping[str, Any]] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        props = item.get("valueObject") or item.get("properties") or {}
        if isinstance(props, Mapping):
            out.append(props)
    return out


# ---------------------------------------------------------------------------
# Generic structure
# ---------------------------------------------------------------------------

def _tables(raw: Mapping[str, Any]) -> tuple[Table, ...]:
    tables = []
    for t in raw.get("tables") or []:
        cells = tuple(
            TableCell(
                row_index=int(c.get("rowIndex", 0)),
                column_index=int(c.get("columnIndex", 0)),
                content=c.get("content") or "",
            )
            for c in t.get("cells") or []
        )
        tables.append(Table(
            row_count=int(t.get("rowCount", 0)),
            column_count=int(t.get("columnCount", 0)),
            cells=cells,
        ))
    return tuple(tables)


def _key_value_pairs(raw: Mapping[str, Any]) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for kv in raw.get("keyValuePairs") or []:
        key   = (kv.get("key") or {}).get("content")
        value = (kv.get("value") or {}).get("content")
        if key and value:
            pairs[key] = value
    return pairs


def _entities(raw: Mapping[str, Any]) -> tuple[Entity, ...]:
    entities = []
    for e in raw.get("entities") or []:
        content = e.get("content")
        if not content:
            continue
        confidence = e.get("confidence")
        entities.append(Entity(
            category=e.get("category") or None,
            content=content,
            confidence=min(1.0, max(0.0, float(confidence))) if confidence is not None else None,
        ))
    return tuple(entities)


# ---------------------------------------------------------------------------
# Profile-specific records
# ---------------------------------------------------------------------------

def _first_fields(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    documents = raw.get("documents") or []
    if not documents:
        return {}
    return documents[0].get("fields") or {}


def _invoice(fields: Mapping[str, Any]) -> InvoiceRecord:
    items = tuple(
        InvoiceLineItem(
            description=_as_text(_field(item, "Description")),
            quantity=_as_number(_field(item, "Quantity")),
            unit_price=_as_number(_field(item, "UnitPrice")),
            amount=_as_number(_field(item, "Amount")),
        )
        for item in _array_objects(_field(fields, "Items"))
    )
    total = _field(fields, "InvoiceTotal")
    return InvoiceRecord(
        invoice_id=_as_text(_field(fields, "InvoiceId")),
        invoice_date=_as_text(_field(fields, "InvoiceDate")),
        due_date=_as_text(_field(fields, "DueDate")),
        vendor_name=_as_text(_field(fields, "VendorName")),
        vendor_address=_as_text(_field(fields, "VendorAddress")),
        customer_name=_as_text(_field(fields, "CustomerName")),
        customer_address=_as_text(_field(fields, "CustomerAddress")),
        subtotal=_as_number(_field(fields, "SubTotal")),
        total_tax=_as_number(_field(fields, "TotalTax")),
        invoice_total=_as_number(total),
        currency=_currency_code(total),
        items=items,
    )


def _receipt(fields: Mapping[str, Any]) -> ReceiptRecord:
    items = tuple(
        ReceiptLineItem(
            name=_as_text(_field(item, "Name", "Description")),
            quantity=_as_number(_field(item, "Quantity")),
            price=_as_number(_field(item, "Price")),
            total_price=_as_number(_field(item, "TotalPrice")),
        )
        for item in _array_objects(_field(fields, "Items"))
    )
    return ReceiptRecord(
        merchant_name=_as_text(_field(fields, "MerchantName")),
        merchant_address=_as_text(_field(fields, "MerchantAddress")),
        transaction_date=_as_text(_field(fields, "TransactionDate")),
        transaction_time=_as_text(_field(fields, "TransactionTime")),
        subtotal=_as_number(_field(fields, "Subtotal", "SubTotal")),
        tax=_as_number(_field(fields, "TotalTax", "Tax")),
        total=_as_number(_field(fields, "Total")),
        items=items,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def normalize(raw: Mapping[str, Any] | None, profile: ExtractionProfile | str) -> CanonicalExtraction:
    """
    Convert a raw analyze result into the canonical record for `profile`.

    Raises:
        UnsupportedProfileError: profile is not a known ExtractionProfile.
    """
    try:
        profile = ExtractionProfile(profile)
    except ValueError as exc:
        raise UnsupportedProfileError(profile) from exc

    raw = raw or {}

    document = None
    if profile is ExtractionProfile.INVOICE:
        document = _invoice(_first_fields(raw))
    elif profile is ExtractionProfile.RECEIPT:
        document = _receipt(_first_fields(raw))

    record = CanonicalExtraction(
        profile=profile,
        model_id=raw.get("modelId") or profile.model_id,
        content=raw.get("content") or "",
        pages=len(raw.get("pages") or []),
        tables=_tables(raw),
        key_value_pairs=_key_value_pairs(raw),
        entities=_entities(raw),
        document=document,
    )
    logger.debug(
        "Normalizer | profile=%s pages=%d tables=%d kv=%d entities=%d",
        profile.value, record.pages, len(record.tables),
        len(record.key_value_pairs), len(record.entities),
    )
    return record
