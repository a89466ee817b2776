"""
DocumentPipeline — the package's public operations

  ingest()          validate → store bytes → record document (status=uploaded)
  analyze()         extraction → normalization → signals → persist → index
  search()          scoped keyword search over analyzed documents
  chat()            grounded project assistant
  chat_history()    paginated, ascending conversation history

analyze() lifecycle for one document:

    uploaded ──▶ processing ──▶ analyzed
                     │
                     └──▶ error  (typed error re-raised to the caller)

  - At most one analysis per document is in flight (per-document lock).
  - Idempotent per profile: an existing result is returned unless
    force=True, which writes the next extraction version.
  - Indexing is best-effort; its failure never fails analyze().

The identity gate upstream supplies scope + user id; no authorization
decisions are made here.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import time
import uuid
from typing import AsyncIterator

from audit_assistant.assistant.assistant import ConversationalAssistant
from audit_assistant.core.config import settings
from audit_assistant.core.errors import UnsupportedProfileError
from audit_assistant.db.repository import Repository, utcnow
from audit_assistant.extraction.client import ExtractionClient
from audit_assistant.observability.tracing import track_event
from audit_assistant.schemas.analysis import AnalysisResult
from audit_assistant.schemas.conversation import ConversationTurn, HistoryPage
from audit_assistant.schemas.documents import ALLOWED_CONTENT_TYPES, DocumentStatus, Scope, UploadedDocument
from audit_assistant.schemas.errors import UploadErrors
from audit_assistant.schemas.extraction import ExtractionProfile, infer_profile
from audit_assistant.search.base import SearchHit
from audit_assistant.search.indexer import SearchIndexer
from audit_assistant.signals.engine import DerivedSignalEngine
from audit_assistant.storage.base import ObjectStore, evidence_key

logger = logging.getLogger(__name__)


class DocumentPipeline:

    def __init__(
        self,
        repository: Repository,
        store:      ObjectStore,
        extraction: ExtractionClient,
        signals:    DerivedSignalEngine,
        indexer:    SearchIndexer,
        assistant:  ConversationalAssistant,
    ) -> None:
        self._repo       = repository
        self._store      = store
        self._extraction = extraction
        self._signals    = signals
        self._indexer    = indexer
        self._assistant  = assistant
        # document_id → (lock, callers holding or awaiting it)
        self._doc_locks: dict[uuid.UUID, tuple[asyncio.Lock, int]] = {}

    # ------------------------------------------------------------------
    # ingest
    # ------------------------------------------------------------------

    async def ingest(
        self,
        scope:        Scope,
        data:         bytes,
        filename:     str,
        content_type: str,
        uploaded_by:  uuid.UUID | None = None,
    ) -> UploadedDocument:
        if not data:
            raise UploadErrors.missing_file()
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise UploadErrors.unsupported_file_type(filename, content_type)
        if len(data) > settings.max_file_size_bytes:
            raise UploadErrors.file_too_large(len(data), settings.max_file_size_bytes)

        document_id = uuid.uuid4()
        key = evidence_key(settings.s3_prefix, scope.tenant_id, scope.project_id, document_id, filename)
        location = await self._store.put(data, content_type, key)

        now = utcnow()
        document = UploadedDocument(
            document_id=document_id,
            tenant_id=scope.tenant_id,
            project_id=scope.project_id,
            location=location,
            original_name=filename,
            content_type=content_type,
            size_bytes=len(data),
            checksum=hashlib.md5(data, usedforsecurity=False).hexdigest(),
            uploaded_by=uploaded_by,
            status=DocumentStatus.UPLOADED,
            created_at=now,
            updated_at=now,
        )
        try:
            await self._repo.create_document(document)
        except Exception:
            # Don't orphan the stored bytes when the record can't be written
            await self._store.delete(location)
            raise

        track_event(
            "document_uploaded",
            document_id=str(document_id), scope=str(scope),
            content_type=content_type, size_bytes=len(data),
        )
        return document

    # ------------------------------------------------------------------
    # analyze
    # ------------------------------------------------------------------

    async def analyze(
        self,
        document_id: uuid.UUID,
        profile:     ExtractionProfile | str | None = None,
        force:       bool = False,
    ) -> AnalysisResult:
        document = await self._repo.get_document(document_id)

        if profile is None:
            profile = infer_profile(document.original_name, document.content_type)
        try:
            profile = ExtractionProfile(profile)
        except ValueError as exc:
            raise UnsupportedProfileError(profile) from exc

        async with self._document_lock(document_id):
            if not force:
                existing = await self._repo.latest_analysis(document_id, profile)
                if existing is not None:
                    logger.info("Pipeline | analysis exists document=%s profile=%s", document_id, profile.value)
                    return existing

            await self._repo.set_document_status(document_id, DocumentStatus.PROCESSING)
            try:
                if force:
                    self._extraction.cache.expire(document.location, profile)
                t0      = time.perf_counter()
                record  = await self._extraction.analyze(document.location, profile)
                version = await self._repo.save_extraction(document_id, record)
                signals = await self._signals.derive_signals(record)
                result  = await self._repo.save_analysis(signals.model_copy(update={
                    "document_id":        document_id,
                    "extraction_version": version,
                    "processing_time_ms": (time.perf_counter() - t0) * 1000,
                }))
            except Exception as exc:
                logger.error("Pipeline | analysis failed document=%s error=%s", document_id, exc)
                await self._repo.set_document_status(document_id, DocumentStatus.ERROR, error_message=str(exc))
                raise

            await self._repo.set_document_status(document_id, DocumentStatus.ANALYZED)

        await self._indexer.index(
            str(document_id),
            f"{record.content} {result.summary}".strip(),
            {
                "tenant_id":     str(document.tenant_id),
                "project_id":    str(document.project_id),
                "document_id":   str(document_id),
                "file_type":     document.content_type,
                "original_name": document.original_name,
                "uploaded_by":   str(document.uploaded_by) if document.uploaded_by else "",
                "profile":       profile.value,
            },
        )

        track_event(
            "document_analyzed",
            document_id=str(document_id), profile=profile.value, version=version,
            pages=record.pages, red_flags=len(result.red_flags),
            confidence=result.confidence_score,
        )
        return result

    async def get_analysis(
        self, document_id: uuid.UUID, profile: ExtractionProfile | None = None,
    ) -> AnalysisResult | None:
        return await self._repo.latest_analysis(document_id, profile)

    async def delete_document(self, document_id: uuid.UUID) -> None:
        document = await self._repo.get_document(document_id)
        await self._store.delete(document.location)
        await self._indexer.remove(str(document_id))
        self._extraction.cache.expire(document.location)
        await self._repo.delete_document(document_id)
        track_event("document_deleted", document_id=str(document_id))

    # ------------------------------------------------------------------
    # search / chat
    # ------------------------------------------------------------------

    async def search(self, scope: Scope, query: str, limit: int = 10) -> list[SearchHit]:
        hits = await self._indexer.search(query, scope=scope, limit=limit)
        track_event("document_search", scope=str(scope), hits=len(hits))
        return hits

    async def chat(self, scope: Scope, message: str, user_id: uuid.UUID | None = None) -> ConversationTurn:
        return await self._assistant.chat(scope, message, user_id=user_id)

    async def chat_history(self, scope: Scope, limit: int | None = None, cursor: int | None = None) -> HistoryPage:
        return await self._assistant.history(scope, limit=limit, cursor=cursor)

    async def suggested_questions(self, scope: Scope, client_name: str | None = None) -> list[str]:
        return await self._assistant.suggested_questions(scope, client_name)

    async def aclose(self) -> None:
        await self._extraction.aclose()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _document_lock(self, document_id: uuid.UUID) -> AsyncIterator[None]:
        """At most one analysis in flight per document; the entry is dropped when idle."""
        lock, users = self._doc_locks.get(document_id) or (asyncio.Lock(), 0)
        self._doc_locks[document_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._doc_locks[document_id]
            if users == 1:
                del self._doc_locks[document_id]
            else:
                self._doc_locks[document_id] = (lock, users - 1)


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------

def build_pipeline() -> DocumentPipeline:
    """Wire the production implementations from settings. Call once at startup."""
    from audit_assistant.core.logging import configure_logging
    from audit_assistant.db.repository import SqlAlchemyRepository
    from audit_assistant.extraction.service import DocumentIntelligenceService
    from audit_assistant.llm.gateway import LLMGateway
    from audit_assistant.observability.tracing import TracingConfig
    from audit_assistant.search.factory import get_search_index
    from audit_assistant.storage.s3 import S3ObjectStore

    configure_logging()
    TracingConfig.init()

    repository  = SqlAlchemyRepository()
    store       = S3ObjectStore()
    completions = LLMGateway()
    indexer     = SearchIndexer(get_search_index())

    return DocumentPipeline(
        repository=repository,
        store=store,
        extraction=ExtractionClient(store=store, service=DocumentIntelligenceService()),
        signals=DerivedSignalEngine(completions),
        indexer=indexer,
        assistant=ConversationalAssistant(repository, indexer, completions),
    )
