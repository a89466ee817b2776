"""
Unit Tests — ExtractionClient
══════════════════════════════
All tests use the in-memory object store and the scripted extraction
service from tests/fakes.py; nothing leaves the process.

Coverage targets:
  ✅ Two analyze() calls within the TTL → exactly one service call
  ✅ Injected cache honoured; an expired entry triggers a new call
  ✅ Cache is per profile → a second profile triggers a new call
  ✅ Signed URL requested with the configured TTL
  ✅ Poll loop waits for a running operation to finish
  ✅ Transient service failures retried inside the envelope
  ✅ Unknown location → NotFoundError, no service call, no retry
  ✅ Unsupported profile → UnsupportedProfileError before any I/O
  ✅ Failed operation with an unreadable source → NotFoundError
  ✅ Deadline exceeded → OperationTimeoutError
"""

from __future__ import annotations

import pytest

from audit_assistant.core.errors import (
    NotFoundError,
    OperationTimeoutError,
    ServiceUnavailableError,
    UnsupportedProfileError,
)
from audit_assistant.core.retry import RetryPolicy
from audit_assistant.extraction.cache import ExtractionCache
from audit_assistant.extraction.client import ExtractionClient
from audit_assistant.extraction.service import ExtractionOperation, OperationStatus
from audit_assistant.schemas.extraction import ExtractionProfile
from fakes import ScriptedExtractionService

LOCATION = "projects/t/p/documents/d/invoice-0042.pdf"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

class _Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _client(store, service, policy=None, deadline=5.0, cache=None) -> ExtractionClient:
    return ExtractionClient(
        store=store,
        service=service,
        cache=cache if cache is not None else ExtractionCache(ttl_seconds=3600),
        policy=policy or RetryPolicy(max_attempts=1),
        deadline=deadline,
        signed_url_ttl=60,
        poll_interval=0.0,
    )


class _FailedOperationService(ScriptedExtractionService):
    async def get_operation(self, handle: str) -> ExtractionOperation:
        return ExtractionOperation(
            status=OperationStatus.FAILED,
            error={"code": "InvalidRequest", "innererror": {"code": "UrlNotAccessible"}, "message": "403"},
        )


# ─────────────────────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestExtractionClient:

    async def test_second_call_within_ttl_served_from_cache(self, object_store, extraction_service):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        client = _client(object_store, extraction_service)

        first  = await client.analyze(LOCATION, ExtractionProfile.INVOICE)
        second = await client.analyze(LOCATION, "invoice")

        assert extraction_service.calls == 1
        assert second is first
        assert first.document.invoice_id == "INV-2024-0042"

    async def test_injected_cache_is_used(self, object_store, extraction_service):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        cache  = ExtractionCache(ttl_seconds=10)
        client = _client(object_store, extraction_service, cache=cache)

        await client.analyze(LOCATION, ExtractionProfile.INVOICE)

        assert client.cache is cache
        assert len(cache) == 1

    async def test_expired_entry_triggers_new_call(self, object_store, extraction_service):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        clock  = _Clock()
        client = _client(object_store, extraction_service, cache=ExtractionCache(ttl_seconds=10, clock=clock))

        await client.analyze(LOCATION, ExtractionProfile.INVOICE)
        clock.now += 9
        await client.analyze(LOCATION, ExtractionProfile.INVOICE)
        assert extraction_service.calls == 1

        clock.now += 2
        await client.analyze(LOCATION, ExtractionProfile.INVOICE)
        assert extraction_service.calls == 2

    async def test_cache_is_per_profile(self, object_store, extraction_service):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        client = _client(object_store, extraction_service)

        await client.analyze(LOCATION, ExtractionProfile.INVOICE)
        generic = await client.analyze(LOCATION, ExtractionProfile.GENERIC)

        assert extraction_service.calls == 2
        assert [m for m, _ in extraction_service.submissions] == ["prebuilt-invoice", "prebuilt-document"]
        assert generic.pages == 2

    async def test_clear_cache_forces_new_call(self, object_store, extraction_service):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        client = _client(object_store, extraction_service)

        await client.analyze(LOCATION, ExtractionProfile.GENERIC)
        client.clear_cache()
        await client.analyze(LOCATION, ExtractionProfile.GENERIC)

        assert extraction_service.calls == 2

    async def test_signed_url_passed_to_service(self, object_store, extraction_service):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        await _client(object_store, extraction_service).analyze(LOCATION, ExtractionProfile.GENERIC)

        _, url = extraction_service.submissions[0]
        assert url == f"https://signed.test/{LOCATION}?ttl=60"
        assert object_store.signed == [LOCATION]

    async def test_polls_until_operation_completes(self, object_store, generic_two_page_raw):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        service = ScriptedExtractionService(
            results={"prebuilt-document": generic_two_page_raw},
            polls_before_done=3,
        )
        record = await _client(object_store, service).analyze(LOCATION, ExtractionProfile.GENERIC)
        assert record.pages == 2

    async def test_transient_failures_retried(self, object_store, generic_two_page_raw, events):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        service = ScriptedExtractionService(results={"prebuilt-document": generic_two_page_raw}, fail_times=2)
        client  = _client(object_store, service, policy=RetryPolicy(max_attempts=3, base_delay=0.0))

        record = await client.analyze(LOCATION, ExtractionProfile.GENERIC)

        assert record.pages == 2
        assert service.calls == 3
        assert [p["attempt"] for n, p in events if n == "operation_retry"] == [1, 2]

    async def test_transient_failures_exhausted(self, object_store):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        service = ScriptedExtractionService(fail_times=5)
        client  = _client(object_store, service, policy=RetryPolicy(max_attempts=3, base_delay=0.0))

        with pytest.raises(ServiceUnavailableError):
            await client.analyze(LOCATION, ExtractionProfile.GENERIC)
        assert service.calls == 3
        assert len(client.cache) == 0

    async def test_missing_object_not_found_and_not_retried(self, object_store, extraction_service):
        client = _client(object_store, extraction_service, policy=RetryPolicy(max_attempts=3, base_delay=0.0))

        with pytest.raises(NotFoundError):
            await client.analyze("projects/missing.pdf", ExtractionProfile.GENERIC)
        assert extraction_service.calls == 0

    async def test_unsupported_profile_rejected_before_io(self, object_store, extraction_service):
        with pytest.raises(UnsupportedProfileError):
            await _client(object_store, extraction_service).analyze(LOCATION, "bank-statement")
        assert object_store.signed == []
        assert extraction_service.calls == 0

    async def test_unreadable_source_maps_to_not_found(self, object_store):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        with pytest.raises(NotFoundError):
            await _client(object_store, _FailedOperationService()).analyze(LOCATION, ExtractionProfile.GENERIC)

    async def test_deadline_exceeded(self, object_store):
        await object_store.put(b"%PDF", "application/pdf", LOCATION)
        service = ScriptedExtractionService(delay=1.0)

        with pytest.raises(OperationTimeoutError):
            await _client(object_store, service, deadline=0.05).analyze(LOCATION, ExtractionProfile.GENERIC)
