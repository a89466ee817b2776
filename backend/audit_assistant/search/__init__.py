from audit_assistant.search.base import IndexUnit, SearchHit, SearchIndex
from audit_assistant.search.factory import get_search_index
from audit_assistant.search.indexer import SearchIndexer

__all__ = ["SearchIndex", "IndexUnit", "SearchHit", "SearchIndexer", "get_search_index"]
