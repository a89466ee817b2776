"""
Evidence Documents — Pydantic Schemas

Lifecycle of an uploaded evidentiary file:

    uploaded → processing → analyzed
                         ↘ error

Design decisions:
  - document_id is always server-generated (UUID4); never client-supplied.
  - checksum is MD5 of the raw file bytes, computed server-side.
  - Scope (tenant + project) comes from the identity gate, never from the
    request body.
  - All timestamps are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Allowed MIME types, checked before touching S3
# ---------------------------------------------------------------------------

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",        # .xlsx
        "application/vnd.ms-excel",                                                 # .xls
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # .docx
        "application/msword",                                                       # .doc
        "text/csv",
    }
)


# ---------------------------------------------------------------------------
# Scope: isolation unit for documents, index units and conversations
# ---------------------------------------------------------------------------

class Scope(BaseModel):
    model_config = ConfigDict(frozen=True)

    tenant_id:  UUID
    project_id: UUID

    def __str__(self) -> str:
        return f"{self.tenant_id}/{self.project_id}"


# ---------------------------------------------------------------------------
# Document state machine
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    UPLOADED   = "uploaded"     # bytes stored, not yet analyzed
    PROCESSING = "processing"   # extraction / signal derivation in flight
    ANALYZED   = "analyzed"     # canonical record + signals persisted
    ERROR      = "error"        # last analysis attempt failed (see error_message)


class UploadedDocument(BaseModel):
    document_id:    UUID
    tenant_id:      UUID
    project_id:     UUID
    location:       str              = Field(..., description="Object-store key of the raw bytes")
    original_name:  str
    content_type:   str
    size_bytes:     int
    checksum:       str              = Field(..., description="MD5 hex digest of the uploaded file")
    uploaded_by:    UUID | None      = None
    status:         DocumentStatus   = DocumentStatus.UPLOADED
    error_message:  str | None       = None
    created_at:     datetime
    updated_at:     datetime

    @property
    def scope(self) -> Scope:
        return Scope(tenant_id=self.tenant_id, project_id=self.project_id)
