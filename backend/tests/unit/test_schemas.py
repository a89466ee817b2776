"""
Unit Tests — Extraction profiles + canonical record helpers
════════════════════════════════════════════════════════════
  ✅ Profile → prebuilt model id
  ✅ Profile inference from filename / content type
  ✅ is_empty / missing_required_fields
  ✅ Records are immutable
"""

from __future__ import annotations

import pydantic
import pytest

from audit_assistant.schemas.extraction import (
    CanonicalExtraction,
    ExtractionProfile,
    InvoiceRecord,
    infer_profile,
)


@pytest.mark.unit
class TestProfiles:

    def test_model_ids(self):
        assert ExtractionProfile.GENERIC.model_id == "prebuilt-document"
        assert ExtractionProfile.INVOICE.model_id == "prebuilt-invoice"
        assert ExtractionProfile.RECEIPT.model_id == "prebuilt-receipt"

    @pytest.mark.parametrize("filename,content_type,expected", [
        ("Invoice_March.pdf",  "application/pdf", ExtractionProfile.INVOICE),
        ("receipt-0012.pdf",   "application/pdf", ExtractionProfile.RECEIPT),
        ("annual-report.pdf",  "application/pdf", ExtractionProfile.GENERIC),
        ("invoices.xlsx",
         "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", ExtractionProfile.GENERIC),
        (None, None, ExtractionProfile.GENERIC),
    ])
    def test_infer_profile(self, filename, content_type, expected):
        assert infer_profile(filename, content_type) is expected


@pytest.mark.unit
class TestCanonicalExtraction:

    def test_empty_record(self):
        record = CanonicalExtraction(profile=ExtractionProfile.GENERIC, model_id="prebuilt-document", content="  ")
        assert record.is_empty

    def test_invoice_with_fields_is_not_empty(self):
        record = CanonicalExtraction(
            profile=ExtractionProfile.INVOICE,
            model_id="prebuilt-invoice",
            document=InvoiceRecord(invoice_id="INV-1", invoice_total=10.0),
        )
        assert not record.is_empty
        assert record.missing_required_fields() == ["invoice_date", "vendor_name"]

    def test_generic_has_no_required_fields(self):
        record = CanonicalExtraction(profile=ExtractionProfile.GENERIC, model_id="m", content="text")
        assert record.missing_required_fields() == []

    def test_immutable(self):
        record = CanonicalExtraction(profile=ExtractionProfile.GENERIC, model_id="m", content="text")
        with pytest.raises(pydantic.ValidationError):
            record.content = "changed"
