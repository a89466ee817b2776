"""
Search Index — Abstract Base

Every concrete keyword-search backend (in-memory BM25, Weaviate)
implements this interface; the indexer and the assistant only speak
this protocol, so backends are swappable.

Contract (enforced by ALL implementations):
  - One unit per document_id; upserting the same id replaces the unit.
  - Filters are equality on metadata keys (project_id, file_type, ...).
  - query() returns hits sorted by relevance, highest first.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass
class IndexUnit:
    """One searchable unit: the text and filterable metadata of a document."""
    document_id: str
    text:        str
    metadata:    dict = field(default_factory=dict)
    # Metadata conventionally carries:
    # - tenant_id / project_id: str   (scope filters)
    # - file_type: str
    # - original_name: str
    # - uploaded_by: str


@dataclass
class SearchHit:
    """One ranked result."""
    document_id: str
    score:       float
    metadata:    dict
    text:        str = field(default="")

    def __post_init__(self) -> None:
        if not self.text and "text" in self.metadata:
            self.text = self.metadata["text"]


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class SearchIndex(ABC):

    @abstractmethod
    async def upsert(self, unit: IndexUnit) -> None:
        """Insert or replace the unit for unit.document_id."""

    @abstractmethod
    async def query(
        self,
        query:   str,
        filters: dict | None = None,
        limit:   int         = 10,
    ) -> list[SearchHit]:
        """Keyword search; `filters` narrows by metadata equality."""

    @abstractmethod
    async def delete(self, document_id: str) -> None:
        """Remove the unit for a document (no-op if absent)."""

    @abstractmethod
    async def count(self) -> int:
        """Total units in the index."""
