"""
Extraction Package
══════════════════

  service.py     ExtractionService interface + document intelligence REST adapter
  cache.py       TTL cache keyed by (location, profile)
  normalizer.py  raw analyze result → CanonicalExtraction (pure)
  client.py      cache → signed URL → service (retry envelope) → normalize
"""

from audit_assistant.extraction.cache import ExtractionCache, TTLCache
from audit_assistant.extraction.client import ExtractionClient
from audit_assistant.extraction.normalizer import normalize
from audit_assistant.extraction.service import DocumentIntelligenceService, ExtractionService

__all__ = [
    "ExtractionCache",
    "TTLCache",
    "ExtractionClient",
    "normalize",
    "ExtractionService",
    "DocumentIntelligenceService",
]
