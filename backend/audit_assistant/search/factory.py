"""
Search Index Factory

Selects the backend (memory | weaviate) from settings.search_backend.
The rest of the package only imports get_search_index().
"""

from __future__ import annotations

from audit_assistant.core.config import settings
from audit_assistant.search.base import SearchIndex


def get_search_index(backend: str | None = None) -> SearchIndex:
    backend = (backend or settings.search_backend).lower()

    if backend == "memory":
        from audit_assistant.search.bm25 import InMemorySearchIndex
        return InMemorySearchIndex()

    if backend == "weaviate":
        from audit_assistant.search.weaviate_store import WeaviateSearchIndex, create_weaviate_client
        return WeaviateSearchIndex(client=create_weaviate_client())

    raise ValueError(
        f"Unknown search backend: '{backend}'. "
        f"Valid options: 'memory', 'weaviate'"
    )
