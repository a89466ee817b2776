"""
Extraction Service — OCR / structured extraction backend

Abstract interface plus the production adapter for the document
intelligence REST API (prebuilt-document / -invoice / -receipt models).

Protocol (long-running operation):

  1. POST {endpoint}/formrecognizer/documentModels/{model}:analyze?api-version=...
        body: {"urlSource": "<signed url>"}
     → 202 Accepted, header Operation-Location: <poll url>
  2. GET <poll url>  until status ∈ {succeeded, failed}
     → {"status": "succeeded", "analyzeResult": {...}}

Error mapping:
  HTTP 429 / 5xx / transport errors   → ServiceUnavailableError (retried)
  HTTP 404, or an analysis failure
  because the URL could not be read   → NotFoundError (not retried)
  other 4xx                           → ValidationError (not retried)
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from audit_assistant.core.config import settings
from audit_assistant.core.errors import NotFoundError, ServiceUnavailableError, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

class OperationStatus:
    NOT_STARTED = "notStarted"
    RUNNING     = "running"
    SUCCEEDED   = "succeeded"
    FAILED      = "failed"


@dataclass
class ExtractionOperation:
    """Snapshot of one long-running analysis."""
    status: str
    result: dict[str, Any] | None = None
    error:  dict[str, Any]        = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.status in (OperationStatus.SUCCEEDED, OperationStatus.FAILED)


# Service error codes meaning "the document at that URL could not be read"
_UNREADABLE_SOURCE_CODES = frozenset({"InvalidContent", "InvalidContentSourceFormat", "UrlNotAccessible"})


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class ExtractionService(ABC):
    """Submits a document URL for analysis and polls for the raw result."""

    @abstractmethod
    async def begin_analysis(self, model_id: str, url: str) -> str:
        """Submit; return an operation handle."""

    @abstractmethod
    async def get_operation(self, handle: str) -> ExtractionOperation:
        """Current state of a submitted analysis."""

    async def aclose(self) -> None:
        """Release transport resources. No-op for services that hold none."""

    async def analyze(self, model_id: str, url: str, poll_interval: float | None = None) -> dict[str, Any]:
        """
        Submit and poll until completion. Returns the raw analyze result.
        No timeout here; the caller's retry envelope owns the deadline.
        """
        interval = settings.extraction_poll_interval if poll_interval is None else poll_interval
        handle   = await self.begin_analysis(model_id, url)

        while True:
            op = await self.get_operation(handle)
            if op.done:
                break
            await asyncio.sleep(interval)

        if op.status == OperationStatus.FAILED:
            raise _failure_to_error(model_id, op.error)

        logger.info("Extraction complete | model=%s", model_id)
        return op.result or {}


def _failure_to_error(model_id: str, error: dict[str, Any]) -> Exception:
    code    = error.get("code", "")
    inner   = (error.get("innererror") or {}).get("code", "")
    message = error.get("message", "analysis failed")
    if code in _UNREADABLE_SOURCE_CODES or inner in _UNREADABLE_SOURCE_CODES:
        return NotFoundError(f"Document source not accessible for {model_id}: {message}")
    return ServiceUnavailableError(f"Analysis failed for {model_id}: {code} {message}".strip())


# ---------------------------------------------------------------------------
# REST adapter
# ---------------------------------------------------------------------------

class DocumentIntelligenceService(ExtractionService):
    """httpx-based client for the document intelligence analyze API."""

    def __init__(
        self,
        endpoint:    str | None = None,
        api_key:     str | None = None,
        api_version: str | None = None,
        client:      httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint    = (endpoint or settings.document_intelligence_endpoint).rstrip("/")
        self._api_key     = api_key or settings.document_intelligence_key
        self._api_version = api_version or settings.document_intelligence_api_version
        self._client      = client or httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    def _headers(self) -> dict[str, str]:
        return {"Ocp-Apim-Subscription-Key": self._api_key}

    @staticmethod
    def _raise_for_status(resp: httpx.Response, what: str) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status == 429 or status >= 500:
            raise ServiceUnavailableError(f"{what}: HTTP {status}", status_code=status)
        if status == 404:
            raise NotFoundError(f"{what}: HTTP 404")
        raise ValidationError(f"{what}: HTTP {status} {resp.text[:200]}")

    async def begin_analysis(self, model_id: str, url: str) -> str:
        submit_url = f"{self._endpoint}/formrecognizer/documentModels/{model_id}:analyze"
        try:
            resp = await self._client.post(
                submit_url,
                params={"api-version": self._api_version},
                headers=self._headers(),
                json={"urlSource": url},
            )
        except httpx.TransportError as exc:
            raise ServiceUnavailableError(f"submit {model_id}: {type(exc).__name__}: {exc}") from exc

        self._raise_for_status(resp, f"submit {model_id}")
        handle = resp.headers.get("Operation-Location") or resp.headers.get("operation-location")
        if not handle:
            raise ServiceUnavailableError(f"submit {model_id}: missing Operation-Location header")

        logger.debug("Extraction submitted | model=%s operation=%s", model_id, handle)
        return handle

    async def get_operation(self, handle: str) -> ExtractionOperation:
        try:
            resp = await self._client.get(handle, headers=self._headers())
        except httpx.TransportError as exc:
            raise ServiceUnavailableError(f"poll: {type(exc).__name__}: {exc}") from exc

        self._raise_for_status(resp, "poll")
        body = resp.json()
        return ExtractionOperation(
            status=body.get("status", OperationStatus.RUNNING),
            result=body.get("analyzeResult"),
            error=body.get("error") or {},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
