"""
Weaviate Search Index — keyword (BM25) search over a shared collection

One collection holds every document unit; scope isolation is a property
filter (tenant_id / project_id) applied on every query. Object UUIDs are
derived deterministically from document_id (uuid5), so re-indexing a
document replaces its unit instead of duplicating it.

The v4 client is synchronous; calls run in the default executor so the
event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import weaviate
from weaviate.classes.config import Configure, DataType, Property
from weaviate.classes.query import Filter, MetadataQuery

from audit_assistant.core.config import settings
from audit_assistant.search.base import IndexUnit, SearchHit, SearchIndex

logger = logging.getLogger(__name__)

_UUID_NAMESPACE = uuid.UUID("6f1c1b7e-6c55-4f0e-9a51-7a3f1d0c2b84")

# Metadata keys promoted to filterable properties
_FILTERABLE = ("tenant_id", "project_id", "file_type", "original_name", "uploaded_by")


def object_uuid(document_id: str) -> str:
    return str(uuid.uuid5(_UUID_NAMESPACE, document_id))


class WeaviateSearchIndex(SearchIndex):

    def __init__(self, client: weaviate.WeaviateClient, collection: str | None = None) -> None:
        self._client = client
        self._name   = collection or settings.weaviate_collection
        self._ensure_collection()

    # ------------------------------------------------------------------
    # Collection provisioning (idempotent, called at __init__)
    # ------------------------------------------------------------------

    def _ensure_collection(self) -> None:
        if self._client.collections.exists(self._name):
            return

        self._client.collections.create(
            name=self._name,
            description="Audit evidence documents (extracted text + summary)",
            vectorizer_config=Configure.Vectorizer.none(),   # keyword search only
            properties=[
                Property(name="document_id",   data_type=DataType.TEXT, index_filterable=True),
                Property(name="text",          data_type=DataType.TEXT, index_searchable=True),
                Property(name="tenant_id",     data_type=DataType.TEXT, index_filterable=True),
                Property(name="project_id",    data_type=DataType.TEXT, index_filterable=True),
                Property(name="file_type",     data_type=DataType.TEXT, index_filterable=True),
                Property(name="original_name", data_type=DataType.TEXT, index_filterable=True),
                Property(name="uploaded_by",   data_type=DataType.TEXT, index_filterable=True),
                Property(name="metadata_json", data_type=DataType.TEXT, index_searchable=False),
                Property(name="indexed_at",    data_type=DataType.DATE),
            ],
        )
        logger.info("Weaviate collection created: %s", self._name)

    def _collection(self):
        return self._client.collections.get(self._name)

    @staticmethod
    async def _run(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    @staticmethod
    def _build_filter(filter_dict: dict):
        clauses = [Filter.by_property(k).equal(str(v)) for k, v in filter_dict.items()]
        if len(clauses) == 1:
            return clauses[0]
        return Filter.all_of(clauses)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def upsert(self, unit: IndexUnit) -> None:
        collection = self._collection()
        obj_id     = object_uuid(unit.document_id)
        properties = {
            "document_id":   unit.document_id,
            "text":          unit.text,
            "metadata_json": json.dumps(unit.metadata, default=str),
            "indexed_at":    datetime.now(timezone.utc),
            **{k: str(unit.metadata.get(k, "")) for k in _FILTERABLE},
        }

        if await self._run(collection.data.exists, obj_id):
            await self._run(collection.data.replace, uuid=obj_id, properties=properties)
        else:
            await self._run(collection.data.insert, properties=properties, uuid=obj_id)

        logger.debug("Weaviate upsert | collection=%s document_id=%s", self._name, unit.document_id)

    async def query(self, query: str, filters: dict | None = None, limit: int = 10) -> list[SearchHit]:
        collection = self._collection()
        response = await self._run(
            collection.query.bm25,
            query=query,
            limit=limit,
            filters=self._build_filter(filters) if filters else None,
            return_metadata=MetadataQuery(score=True),
        )

        hits = []
        for obj in response.objects:
            props = obj.properties
            try:
                metadata = json.loads(props.get("metadata_json") or "{}")
            except json.JSONDecodeError:
                metadata = {}
            hits.append(SearchHit(
                document_id=props.get("document_id", ""),
                score=round(float(obj.metadata.score or 0.0), 6),
                metadata=metadata,
                text=props.get("text", ""),
            ))

        logger.debug(
            "Weaviate query | collection=%s limit=%d results=%d",
            self._name, limit, len(hits),
        )
        return hits

    async def delete(self, document_id: str) -> None:
        collection = self._collection()
        await self._run(
            collection.data.delete_many,
            where=Filter.by_property("document_id").equal(document_id),
        )
        logger.info("Weaviate delete | collection=%s document_id=%s", self._name, document_id)

    async def count(self) -> int:
        agg = await self._run(self._collection().aggregate.over_all, total_count=True)
        return agg.total_count or 0


# ---------------------------------------------------------------------------
# Client factory: call once at startup and share
# ---------------------------------------------------------------------------

def create_weaviate_client() -> weaviate.WeaviateClient:
    """Connected client for Weaviate Cloud (API key set) or a local instance."""
    if settings.weaviate_api_key:
        return weaviate.connect_to_weaviate_cloud(
            cluster_url=settings.weaviate_url,
            auth_credentials=weaviate.auth.AuthApiKey(settings.weaviate_api_key),
        )
    return weaviate.connect_to_local(
        host=settings.weaviate_host,
        port=settings.weaviate_port,
    )
