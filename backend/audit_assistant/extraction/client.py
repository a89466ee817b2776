"""
Extraction Client — location + profile → CanonicalExtraction

Flow for analyze(location, profile):

  1. Validate profile                         → UnsupportedProfileError
  2. Cache lookup (location, profile)         → hit returns immediately,
                                                no storage / service call
  3. Inside the retry/timeout envelope:
       a. signed URL from the object store    (TTL 60 s; NotFoundError if gone)
       b. submit + poll the extraction service
  4. Normalize raw result → canonical record
  5. Cache and return

Deadline: settings.analysis_timeout_seconds (default 300 s) bounds step 3
in full, including every poll and back-off sleep.
"""

from __future__ import annotations

import logging
from typing import Any

from audit_assistant.core.config import settings
from audit_assistant.core.errors import UnsupportedProfileError
from audit_assistant.core.retry import RetryPolicy, with_retry
from audit_assistant.extraction.cache import ExtractionCache
from audit_assistant.extraction.normalizer import normalize
from audit_assistant.extraction.service import ExtractionService
from audit_assistant.observability.tracing import traced
from audit_assistant.schemas.extraction import CanonicalExtraction, ExtractionProfile
from audit_assistant.storage.base import ObjectStore

logger = logging.getLogger(__name__)


class ExtractionClient:

    def __init__(
        self,
        store:          ObjectStore,
        service:        ExtractionService,
        cache:          ExtractionCache | None = None,
        policy:         RetryPolicy | None     = None,
        deadline:       float | None           = None,
        signed_url_ttl: int | None             = None,
        poll_interval:  float | None           = None,
    ) -> None:
        self._store          = store
        self._service        = service
        self._cache          = cache if cache is not None else ExtractionCache()
        self._policy         = policy or RetryPolicy.from_settings()
        self._deadline       = settings.analysis_timeout_seconds if deadline is None else deadline
        self._signed_url_ttl = signed_url_ttl or settings.signed_url_ttl_seconds
        self._poll_interval  = poll_interval

    @property
    def cache(self) -> ExtractionCache:
        return self._cache

    @traced("extraction.analyze")
    async def analyze(self, location: str, profile: ExtractionProfile | str) -> CanonicalExtraction:
        try:
            profile = ExtractionProfile(profile)
        except ValueError as exc:
            raise UnsupportedProfileError(profile) from exc

        cached = self._cache.lookup(location, profile)
        if cached is not None:
            return cached

        async def _extract() -> dict[str, Any]:
            signed = await self._store.signed_url(location, self._signed_url_ttl)
            return await self._service.analyze(profile.model_id, signed.url, self._poll_interval)

        raw = await with_retry(
            _extract,
            context=f"extraction:{profile.model_id}:{location}",
            policy=self._policy,
            deadline=self._deadline,
        )

        record = normalize(raw, profile)
        self._cache.store(location, profile, record)

        logger.info(
            "ExtractionClient | location=%s profile=%s pages=%d tables=%d",
            location, profile.value, record.pages, len(record.tables),
        )
        return record

    def clear_cache(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        await self._service.aclose()
