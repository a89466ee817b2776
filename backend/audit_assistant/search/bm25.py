"""
In-memory BM25 search index.

Process-local keyword index used in development, tests and single-node
deployments. BM25 excels at exact-term matching, which is what auditors
search for:
  - Invoice numbers ("INV-2024-0042")
  - Vendor names, account codes
  - Exact phrases lifted from a contract ("net 30 days")

Ranking:
  1. Units containing the normalized query as an exact phrase come first.
  2. Then BM25L score over the filtered corpus (BM25L keeps idf positive
     even for terms present in most units, and small project corpora would
     otherwise score common terms at zero).
  3. Units sharing no query term are never returned.

Dependencies:
  pip install rank-bm25>=0.2.2
"""

from __future__ import annotations

import logging
import re
import string

from rank_bm25 import BM25L

from audit_assistant.search.base import IndexUnit, SearchHit, SearchIndex

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tokenisation
# ---------------------------------------------------------------------------

_STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "it", "as", "be", "was", "are",
    "that", "this", "which", "have", "has", "had", "not", "no", "can",
    "will", "would", "could", "should", "may", "might", "do", "does",
    "did", "its", "their", "our", "your", "my", "his", "her", "what",
})

_PUNCT_TABLE = str.maketrans("", "", string.punctuation.replace("-", ""))
_SPACE_RE    = re.compile(r"\s+")


def _tokenize(text: str) -> list[str]:
    """
    lowercase → strip punctuation (hyphens kept) → drop stopwords.
    Returns at least one token so BM25 never receives an empty document.
    """
    text   = text.lower().translate(_PUNCT_TABLE)
    tokens = [t for t in text.split() if t and t not in _STOPWORDS]
    return tokens or ["<empty>"]


def _normalize_phrase(text: str) -> str:
    return _SPACE_RE.sub(" ", text.lower().translate(_PUNCT_TABLE)).strip()


def _matches(metadata: dict, filters: dict | None) -> bool:
    if not filters:
        return True
    return all(str(metadata.get(k)) == str(v) for k, v in filters.items())


# ---------------------------------------------------------------------------
# InMemorySearchIndex
# ---------------------------------------------------------------------------

class InMemorySearchIndex(SearchIndex):
    """
    Dict of units keyed by document_id; BM25 is built per query over the
    filtered candidate set. No awaits inside operations, so each call is
    atomic on the event loop.
    """

    # Added to BM25 scores of exact-phrase matches so they always rank first
    PHRASE_BOOST = 1_000.0

    def __init__(self) -> None:
        self._units:  dict[str, IndexUnit] = {}
        self._tokens: dict[str, list[str]] = {}
        self._phrase: dict[str, str]       = {}

    async def upsert(self, unit: IndexUnit) -> None:
        self._units[unit.document_id]  = unit
        self._tokens[unit.document_id] = _tokenize(unit.text)
        # Space-padded so the phrase check matches whole tokens only
        self._phrase[unit.document_id] = f" {_normalize_phrase(unit.text)} "
        logger.debug("BM25 upsert | document_id=%s tokens=%d", unit.document_id, len(self._tokens[unit.document_id]))

    async def query(self, query: str, filters: dict | None = None, limit: int = 10) -> list[SearchHit]:
        candidates = [u for u in self._units.values() if _matches(u.metadata, filters)]
        query_tokens = [t for t in _tokenize(query) if t != "<empty>"]
        if not candidates or not query_tokens:
            return []

        corpus = [self._tokens[u.document_id] for u in candidates]
        scores = BM25L(corpus).get_scores(query_tokens)
        phrase = _normalize_phrase(query)
        wanted = set(query_tokens)

        hits: list[SearchHit] = []
        for unit, tokens, score in zip(candidates, corpus, scores):
            if not wanted.intersection(tokens):
                continue
            score = float(score)
            if phrase and f" {phrase} " in self._phrase[unit.document_id]:
                score += self.PHRASE_BOOST
            hits.append(SearchHit(
                document_id=unit.document_id,
                score=round(score, 6),
                metadata=dict(unit.metadata),
                text=unit.text,
            ))

        hits.sort(key=lambda h: h.score, reverse=True)
        logger.debug(
            "BM25 query | candidates=%d hits=%d filters=%s",
            len(candidates), len(hits), filters,
        )
        return hits[:limit]

    async def delete(self, document_id: str) -> None:
        self._units.pop(document_id, None)
        self._tokens.pop(document_id, None)
        self._phrase.pop(document_id, None)

    async def count(self) -> int:
        return len(self._units)

    def __len__(self) -> int:
        return len(self._units)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<InMemorySearchIndex units={len(self)}>"
