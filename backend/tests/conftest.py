"""
Root conftest.py — shared fixtures for ALL tests (unit + integration)

Environment strategy:
  - Settings are seeded from env vars BEFORE any package import.
  - Persistence runs on a throwaway SQLite file per test (aiosqlite), so the
    real SqlAlchemyRepository is exercised without PostgreSQL.
  - Object store, extraction service and LLM are in-memory fakes
    (tests/fakes.py) implementing the real interfaces.
  - Retry policies in fixtures use a zero base delay so back-off never
    slows the suite; back-off timing is tested explicitly in test_retry.py.

How to run:
  pytest                                  # all tests
  pytest -m unit                          # unit tests only
  pytest backend/tests/unit/test_retry.py # single file
"""

from __future__ import annotations

import json
import os
import uuid
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any package imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DATABASE_URL",   "sqlite+aiosqlite:///./audit_assistant_test.db")
os.environ.setdefault("AWS_REGION",     "us-east-1")
os.environ.setdefault("S3_BUCKET",      "test-bucket")
os.environ.setdefault("SEARCH_BACKEND", "memory")
os.environ.setdefault("OPENAI_API_KEY", "sk-test-key")
os.environ.setdefault("DOCUMENT_INTELLIGENCE_ENDPOINT", "https://docintel.test")
os.environ.setdefault("DOCUMENT_INTELLIGENCE_KEY",      "test-key")
os.environ.setdefault("APP_ENV",        "development")
os.environ.setdefault("DEBUG",          "true")

from audit_assistant.core.retry import RetryPolicy                    # noqa: E402
from audit_assistant.schemas.documents import Scope                   # noqa: E402
from fakes import (                                                   # noqa: E402
    InMemoryObjectStore,
    ScriptedCompletions,
    ScriptedExtractionService,
)


# ─────────────────────────────────────────────────────────────────────────────
# Identity fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def test_tenant_id() -> uuid.UUID:
    return uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")


@pytest.fixture
def test_project_id() -> uuid.UUID:
    return uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")


@pytest.fixture
def test_user_id() -> uuid.UUID:
    return uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")


@pytest.fixture
def scope(test_tenant_id, test_project_id) -> Scope:
    return Scope(tenant_id=test_tenant_id, project_id=test_project_id)


@pytest.fixture
def other_scope(test_tenant_id) -> Scope:
    return Scope(tenant_id=test_tenant_id, project_id=uuid.UUID("eeeeeeee-eeee-eeee-eeee-eeeeeeeeeeee"))


# ─────────────────────────────────────────────────────────────────────────────
# Sample file bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal two-page PDF."""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
        b"2 0 obj\n<< /Type /Pages /Kids [3 0 R 4 0 R] /Count 2 >>\nendobj\n"
        b"3 0 obj\n<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>\nendobj\n"
        b"4 0 obj\n<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>\nendobj\n"
        b"trailer\n<< /Size 5 /Root 1 0 R >>\n%%EOF"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Raw analyze results (document intelligence REST shape)
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def generic_two_page_raw() -> dict:
    return {
        "modelId": "prebuilt-document",
        "content": (
            "Quarterly Expense Report\nPrepared for Northwind Traders\n"
            "Travel expenses exceeded budget by 18 percent in March.\n"
            "Net 30 days payment terms apply to all vendor invoices."
        ),
        "pages": [{"pageNumber": 1}, {"pageNumber": 2}],
        "tables": [
            {
                "rowCount": 2,
                "columnCount": 2,
                "cells": [
                    {"rowIndex": 0, "columnIndex": 0, "content": "Category"},
                    {"rowIndex": 0, "columnIndex": 1, "content": "Amount"},
                    {"rowIndex": 1, "columnIndex": 0, "content": "Travel"},
                    {"rowIndex": 1, "columnIndex": 1, "content": "12,400.00"},
                ],
            }
        ],
        "keyValuePairs": [
            {"key": {"content": "Prepared for"}, "value": {"content": "Northwind Traders"}},
            {"key": {"content": "Approved by"}},                     # no value → dropped
        ],
        "entities": [
            {"category": "Organization", "content": "Northwind Traders", "confidence": 0.9},
            {"category": "Quantity",     "content": "18 percent",        "confidence": 0.7},
        ],
    }


@pytest.fixture
def invoice_raw() -> dict:
    return {
        "modelId": "prebuilt-invoice",
        "content": "INVOICE INV-2024-0042 Contoso Ltd. Total $1,250.00",
        "pages": [{"pageNumber": 1}],
        "documents": [
            {
                "docType": "invoice",
                "fields": {
                    "InvoiceId":     {"type": "string", "valueString": "INV-2024-0042", "content": "INV-2024-0042"},
                    "InvoiceDate":   {"type": "date",   "valueDate": "2024-03-01",      "content": "March 1, 2024"},
                    "VendorName":    {"type": "string", "valueString": "Contoso Ltd.",  "content": "Contoso Ltd."},
                    "VendorAddress": {"type": "address", "content": "1 Main St\nRedmond, WA"},
                    "SubTotal":      {"type": "currency", "valueCurrency": {"amount": 1150.0, "currencyCode": "USD"}},
                    "TotalTax":      {"type": "currency", "valueCurrency": {"amount": 100.0,  "currencyCode": "USD"}},
                    "InvoiceTotal":  {"type": "currency", "valueCurrency": {"amount": 1250.0, "currencyCode": "USD"},
                                      "content": "$1,250.00"},
                    "Items": {
                        "type": "array",
                        "valueArray": [
                            {
                                "type": "object",
                                "valueObject": {
                                    "Description": {"type": "string", "valueString": "Consulting hours"},
                                    "Quantity":    {"type": "number", "valueNumber": 10},
                                    "UnitPrice":   {"type": "currency", "valueCurrency": {"amount": 115.0}},
                                    "Amount":      {"type": "currency", "valueCurrency": {"amount": 1150.0}},
                                },
                            }
                        ],
                    },
                },
            }
        ],
    }


@pytest.fixture
def receipt_raw() -> dict:
    return {
        "modelId": "prebuilt-receipt",
        "content": "Fabrikam Coffee 2024-02-14 Total 9.75",
        "pages": [{"pageNumber": 1}],
        "documents": [
            {
                "docType": "receipt.retailMeal",
                "fields": {
                    "MerchantName":    {"type": "string", "valueString": "Fabrikam Coffee"},
                    "TransactionDate": {"type": "date",   "valueDate": "2024-02-14"},
                    "TransactionTime": {"type": "time",   "valueTime": "08:15:00"},
                    "Subtotal":        {"type": "number", "valueNumber": 9.0},
                    "TotalTax":        {"type": "number", "valueNumber": 0.75},
                    "Total":           {"type": "number", "valueNumber": 9.75},
                    "Items": {
                        "type": "array",
                        "valueArray": [
                            {"type": "object", "valueObject": {
                                "Description": {"type": "string", "valueString": "Latte"},
                                "Quantity":    {"type": "number", "valueNumber": 2},
                                "Price":       {"type": "number", "valueNumber": 4.5},
                                "TotalPrice":  {"type": "number", "valueNumber": 9.0},
                            }},
                        ],
                    },
                },
            }
        ],
    }


@pytest.fixture
def signals_reply() -> str:
    return json.dumps({
        "summary": "Quarterly expense report showing travel overspend.",
        "red_flags": ["Travel expenses exceeded budget by 18 percent"],
        "highlights": ["Consistent net 30 payment terms"],
    })


# ─────────────────────────────────────────────────────────────────────────────
# Fakes + policies
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Production-like attempt budget without back-off sleeps."""
    return RetryPolicy(max_attempts=3, base_delay=0.0)


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def extraction_service(generic_two_page_raw, invoice_raw, receipt_raw) -> ScriptedExtractionService:
    return ScriptedExtractionService(results={
        "prebuilt-document": generic_two_page_raw,
        "prebuilt-invoice":  invoice_raw,
        "prebuilt-receipt":  receipt_raw,
    })


@pytest.fixture
def completions(signals_reply) -> ScriptedCompletions:
    return ScriptedCompletions(reply=signals_reply)


@pytest.fixture
def events():
    """Capture named observability events emitted during the test."""
    from audit_assistant.observability.tracing import add_event_listener, remove_event_listener

    captured: list[tuple[str, dict]] = []

    def _listener(name: str, props: dict) -> None:
        captured.append((name, props))

    add_event_listener(_listener)
    yield captured
    remove_event_listener(_listener)


# ─────────────────────────────────────────────────────────────────────────────
# Database: real repository on a per-test SQLite file
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def repository(tmp_path) -> AsyncGenerator:
    from audit_assistant.db.repository import SqlAlchemyRepository
    from audit_assistant.db.session import create_engine_from_settings, create_sessionmaker, init_models

    engine = create_engine_from_settings(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield SqlAlchemyRepository(create_sessionmaker(engine))
    await engine.dispose()


# ─────────────────────────────────────────────────────────────────────────────
# Fully wired pipeline
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def search_indexer():
    from audit_assistant.search.bm25 import InMemorySearchIndex
    from audit_assistant.search.indexer import SearchIndexer
    return SearchIndexer(InMemorySearchIndex())


@pytest.fixture
def make_pipeline(repository, object_store, extraction_service, completions, search_indexer, fast_policy):
    """Factory: build a DocumentPipeline; override any collaborator by keyword."""
    from audit_assistant.assistant.assistant import ConversationalAssistant
    from audit_assistant.extraction.cache import ExtractionCache
    from audit_assistant.extraction.client import ExtractionClient
    from audit_assistant.services.pipeline import DocumentPipeline
    from audit_assistant.signals.engine import DerivedSignalEngine

    def _build(
        service=None,
        completion_service=None,
        chat_completions=None,
        indexer=None,
        policy=None,
    ) -> DocumentPipeline:
        policy  = policy or fast_policy
        indexer = indexer if indexer is not None else search_indexer
        client  = ExtractionClient(
            store=object_store,
            service=service if service is not None else extraction_service,
            cache=ExtractionCache(ttl_seconds=3600),
            policy=policy,
            deadline=5.0,
            poll_interval=0.0,
        )
        return DocumentPipeline(
            repository=repository,
            store=object_store,
            extraction=client,
            signals=DerivedSignalEngine(completion_service or completions, policy=policy, deadline=5.0),
            indexer=indexer,
            assistant=ConversationalAssistant(
                repository, indexer, chat_completions or completion_service or completions,
                policy=policy, deadline=5.0,
            ),
        )

    return _build
