"""
Search Indexer — best-effort ingestion + scoped retrieval

index() never raises: an indexing failure is logged, reported as False
and left for a later re-index; it must not fail the analysis that
produced the content.
"""

from __future__ import annotations

import logging

from audit_assistant.observability.tracing import track_event
from audit_assistant.schemas.documents import Scope
from audit_assistant.search.base import IndexUnit, SearchHit, SearchIndex

logger = logging.getLogger(__name__)


class SearchIndexer:

    def __init__(self, index: SearchIndex) -> None:
        self._index = index

    @property
    def backend(self) -> SearchIndex:
        return self._index

    async def index(self, document_id: str, text: str, metadata: dict | None = None) -> bool:
        unit = IndexUnit(document_id=str(document_id), text=text, metadata=dict(metadata or {}))
        try:
            await self._index.upsert(unit)
        except Exception as exc:
            logger.error(
                "SearchIndexer | index failed (non-fatal) document_id=%s error=%s",
                document_id, exc, exc_info=True,
            )
            return False

        track_event("document_indexed", document_id=str(document_id), chars=len(text))
        return True

    async def search(self, query: str, scope: Scope | None = None, limit: int = 10) -> list[SearchHit]:
        filters = {"project_id": str(scope.project_id)} if scope else None
        if scope:
            filters["tenant_id"] = str(scope.tenant_id)
        hits = await self._index.query(query, filters=filters, limit=limit)
        logger.info(
            "SearchIndexer | query=%r scope=%s hits=%d",
            query[:80], scope, len(hits),
        )
        return hits

    async def remove(self, document_id: str) -> None:
        await self._index.delete(str(document_id))
