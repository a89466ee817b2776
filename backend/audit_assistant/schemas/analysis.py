"""Derived-signal result schema."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from audit_assistant.schemas.extraction import ExtractionProfile


class AnalysisResult(BaseModel):
    """
    Signals derived from one canonical extraction.
    Created once per extraction version; read-only afterwards.
    """
    model_config = ConfigDict(frozen=True)

    summary:                  str
    red_flags:                tuple[str, ...]   = ()
    highlights:               tuple[str, ...]   = ()
    confidence_score:         float             = Field(0.0, ge=0.0, le=1.0)
    processing_time_ms:       float             = 0.0
    insufficient_information: bool              = False

    profile:            ExtractionProfile | None = None
    document_id:        UUID | None              = None
    extraction_version: int | None               = None
    created_at:         datetime | None          = None
