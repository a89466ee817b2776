"""
SQLAlchemy ORM Models — documents, extractions, analyses, conversations

2.x style mapped classes for full async support. Column types are the
portable generics (Uuid, JSON, DateTime(timezone=True)); JSON upgrades to
JSONB on PostgreSQL. Schema migrations are managed outside this package;
create_all() is used for local development and tests.

Uniqueness invariants live in the schema, not just in code:
  - one extraction per (document, profile, version)
  - one conversation turn per (tenant, project, seq)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# documents
# ---------------------------------------------------------------------------

class DocumentRow(Base):
    """
    One uploaded evidence file.

    State machine (status column):
        uploaded    bytes stored, not yet analyzed
        processing  extraction in flight (at most one per document)
        analyzed    canonical record + signals persisted
        error       last analysis failed (see error_message)
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded', 'processing', 'analyzed', 'error')",
            name="documents_status_check",
        ),
        Index("idx_documents_scope", "tenant_id", "project_id"),
    )

    id:            Mapped[uuid.UUID]           = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id:     Mapped[uuid.UUID]           = mapped_column(Uuid, nullable=False)
    project_id:    Mapped[uuid.UUID]           = mapped_column(Uuid, nullable=False)
    location:      Mapped[str]                 = mapped_column(Text, nullable=False)
    original_name: Mapped[str]                 = mapped_column(Text, nullable=False)
    content_type:  Mapped[str]                 = mapped_column(Text, nullable=False)
    size_bytes:    Mapped[int]                 = mapped_column(BigInteger, nullable=False)
    checksum:      Mapped[str]                 = mapped_column(String(32), nullable=False)
    uploaded_by:   Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    status:        Mapped[str]                 = mapped_column(String(16), nullable=False, default="uploaded")
    error_message: Mapped[Optional[str]]       = mapped_column(Text, nullable=True)
    created_at:    Mapped[datetime]            = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at:    Mapped[datetime]            = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<DocumentRow id={self.id} name={self.original_name!r} status={self.status}>"


# ---------------------------------------------------------------------------
# extractions: immutable, versioned per (document, profile)
# ---------------------------------------------------------------------------

class ExtractionRow(Base):
    __tablename__ = "extractions"
    __table_args__ = (
        UniqueConstraint("document_id", "profile", "version", name="uq_extractions_doc_profile_version"),
    )

    id:          Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    profile:     Mapped[str]       = mapped_column(String(32), nullable=False)
    version:     Mapped[int]       = mapped_column(Integer, nullable=False)
    model_id:    Mapped[str]       = mapped_column(String(64), nullable=False)
    payload:     Mapped[dict]      = mapped_column(JSONType, nullable=False)
    created_at:  Mapped[datetime]  = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ExtractionRow document={self.document_id} profile={self.profile} v{self.version}>"


# ---------------------------------------------------------------------------
# analysis_results: one per extraction version
# ---------------------------------------------------------------------------

class AnalysisRow(Base):
    __tablename__ = "analysis_results"
    __table_args__ = (
        UniqueConstraint("document_id", "profile", "extraction_version", name="uq_analysis_extraction"),
    )

    id:                       Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id:              Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    profile:                  Mapped[str]       = mapped_column(String(32), nullable=False)
    extraction_version:       Mapped[int]       = mapped_column(Integer, nullable=False)
    summary:                  Mapped[str]       = mapped_column(Text, nullable=False)
    red_flags:                Mapped[list]      = mapped_column(JSONType, nullable=False, default=list)
    highlights:               Mapped[list]      = mapped_column(JSONType, nullable=False, default=list)
    confidence_score:         Mapped[float]     = mapped_column(Float, nullable=False)
    processing_time_ms:       Mapped[float]     = mapped_column(Float, nullable=False, default=0.0)
    insufficient_information: Mapped[bool]      = mapped_column(Boolean, nullable=False, default=False)
    created_at:               Mapped[datetime]  = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# chat_messages: append-only, ordered per scope by seq
# ---------------------------------------------------------------------------

class ConversationTurnRow(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("tenant_id", "project_id", "seq", name="uq_chat_scope_seq"),
        CheckConstraint("role IN ('user', 'assistant')", name="chat_messages_role_check"),
    )

    id:                     Mapped[uuid.UUID]           = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id:              Mapped[uuid.UUID]           = mapped_column(Uuid, nullable=False)
    project_id:             Mapped[uuid.UUID]           = mapped_column(Uuid, nullable=False)
    seq:                    Mapped[int]                 = mapped_column(Integer, nullable=False)
    role:                   Mapped[str]                 = mapped_column(String(16), nullable=False)
    content:                Mapped[str]                 = mapped_column(Text, nullable=False)
    user_id:                Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    context_document_ids:   Mapped[list]                = mapped_column(JSONType, nullable=False, default=list)
    grounding_insufficient: Mapped[bool]                = mapped_column(Boolean, nullable=False, default=False)
    fallback:               Mapped[bool]                = mapped_column(Boolean, nullable=False, default=False)
    created_at:             Mapped[datetime]            = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ConversationTurnRow scope={self.tenant_id}/{self.project_id} seq={self.seq} role={self.role}>"
