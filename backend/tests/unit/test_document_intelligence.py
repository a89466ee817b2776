"""
Unit Tests — DocumentIntelligenceService (REST adapter)
════════════════════════════════════════════════════════
The adapter runs against an httpx.MockTransport, so the real request
building and status mapping are exercised without a network.

Coverage targets:
  ✅ Submit → 202 + Operation-Location, poll running → succeeded
  ✅ Request carries model path, api-version, key header and urlSource
  ✅ 429 / 503 on submit → ServiceUnavailableError (retryable)
  ✅ 404 on submit → NotFoundError
  ✅ 400 on submit → ValidationError
  ✅ Missing Operation-Location → ServiceUnavailableError
  ✅ Transport error → ServiceUnavailableError
  ✅ Failed operation → ServiceUnavailableError with the service code
"""

from __future__ import annotations

import json

import httpx
import pytest

from audit_assistant.core.errors import NotFoundError, ServiceUnavailableError, ValidationError
from audit_assistant.extraction.service import DocumentIntelligenceService

ENDPOINT = "https://docintel.test"
POLL_URL = f"{ENDPOINT}/formrecognizer/documentModels/prebuilt-invoice/analyzeResults/op-1"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _service(handler) -> DocumentIntelligenceService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DocumentIntelligenceService(
        endpoint=ENDPOINT + "/",
        api_key="secret",
        api_version="2023-07-31",
        client=client,
    )


def _submit_status(status: int, headers: dict | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, headers=headers or {}, text="error body")
    return handler


# ─────────────────────────────────────────────────────────────────────────────
# Tests
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestDocumentIntelligenceService:

    async def test_submit_then_poll_to_success(self, invoice_raw):
        requests: list[httpx.Request] = []
        polls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "POST":
                return httpx.Response(202, headers={"Operation-Location": POLL_URL})
            polls["n"] += 1
            if polls["n"] == 1:
                return httpx.Response(200, json={"status": "running"})
            return httpx.Response(200, json={"status": "succeeded", "analyzeResult": invoice_raw})

        service = _service(handler)
        raw = await service.analyze("prebuilt-invoice", "https://signed.test/doc", poll_interval=0.0)
        await service.aclose()

        assert raw["modelId"] == "prebuilt-invoice"
        submit = requests[0]
        assert submit.url.path == "/formrecognizer/documentModels/prebuilt-invoice:analyze"
        assert submit.url.params["api-version"] == "2023-07-31"
        assert submit.headers["Ocp-Apim-Subscription-Key"] == "secret"
        assert json.loads(submit.content) == {"urlSource": "https://signed.test/doc"}
        assert [str(r.url) for r in requests[1:]] == [POLL_URL, POLL_URL]

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_throttling_and_server_errors_are_transient(self, status):
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await _service(_submit_status(status)).begin_analysis("prebuilt-document", "u")
        assert exc_info.value.status_code == status
        assert exc_info.value.retryable

    async def test_404_is_not_found(self):
        with pytest.raises(NotFoundError):
            await _service(_submit_status(404)).begin_analysis("prebuilt-document", "u")

    async def test_other_client_errors_are_validation(self):
        with pytest.raises(ValidationError):
            await _service(_submit_status(400)).begin_analysis("prebuilt-document", "u")

    async def test_missing_operation_location(self):
        with pytest.raises(ServiceUnavailableError, match="Operation-Location"):
            await _service(_submit_status(202)).begin_analysis("prebuilt-document", "u")

    async def test_transport_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ServiceUnavailableError, match="ConnectError"):
            await _service(handler).begin_analysis("prebuilt-document", "u")

    async def test_failed_operation_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(202, headers={"Operation-Location": POLL_URL})
            return httpx.Response(200, json={
                "status": "failed",
                "error": {"code": "InternalServerError", "message": "model crashed"},
            })

        with pytest.raises(ServiceUnavailableError, match="InternalServerError"):
            await _service(handler).analyze("prebuilt-invoice", "u", poll_interval=0.0)
