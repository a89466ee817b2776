"""
Repository — persistence for documents, extractions, analyses and turns

Repository is the abstract seam the pipeline and assistant depend on;
SqlAlchemyRepository is the production implementation.

Ordering guarantees for conversation turns (per scope):
  - seq is last_seq + 1 (the (tenant, project, seq) unique constraint
    rejects a concurrent writer that raced past the in-process lock)
  - created_at is strictly greater than the previous turn's; when the
    wall clock has not advanced (or went backwards) it is bumped by 1 µs
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from audit_assistant.core.errors import NotFoundError
from audit_assistant.db.models import AnalysisRow, ConversationTurnRow, DocumentRow, ExtractionRow
from audit_assistant.db.session import session_scope
from audit_assistant.schemas.analysis import AnalysisResult
from audit_assistant.schemas.conversation import ConversationTurn, TurnRole
from audit_assistant.schemas.documents import DocumentStatus, Scope, UploadedDocument
from audit_assistant.schemas.extraction import CanonicalExtraction, ExtractionProfile

logger = logging.getLogger(__name__)

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _utc(dt: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; everything stored is UTC."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def next_timestamp(now: datetime, last: datetime | None) -> datetime:
    if last is None or now > last:
        return now
    return last + _TICK


@dataclass
class DocumentAnalysis:
    """A document paired with its latest analysis, used as grounding and suggestion input."""
    document: UploadedDocument
    analysis: AnalysisResult


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class Repository(ABC):

    # documents -----------------------------------------------------------

    @abstractmethod
    async def create_document(self, document: UploadedDocument) -> UploadedDocument: ...

    @abstractmethod
    async def get_document(self, document_id: uuid.UUID) -> UploadedDocument:
        """Raises NotFoundError."""

    @abstractmethod
    async def set_document_status(
        self,
        document_id:   uuid.UUID,
        status:        DocumentStatus,
        error_message: str | None = None,
    ) -> UploadedDocument: ...

    @abstractmethod
    async def delete_document(self, document_id: uuid.UUID) -> None: ...

    # extractions / analyses ----------------------------------------------

    @abstractmethod
    async def save_extraction(self, document_id: uuid.UUID, record: CanonicalExtraction) -> int:
        """Persist as the next version for (document, profile); returns the version."""

    @abstractmethod
    async def latest_extraction(
        self, document_id: uuid.UUID, profile: ExtractionProfile,
    ) -> tuple[int, CanonicalExtraction] | None: ...

    @abstractmethod
    async def save_analysis(self, result: AnalysisResult) -> AnalysisResult: ...

    @abstractmethod
    async def latest_analysis(
        self, document_id: uuid.UUID, profile: ExtractionProfile | None = None,
    ) -> AnalysisResult | None: ...

    @abstractmethod
    async def list_analyses(self, scope: Scope) -> list[DocumentAnalysis]:
        """Latest analysis per analyzed document in the scope, newest first."""

    # conversation --------------------------------------------------------

    @abstractmethod
    async def append_turn(
        self,
        scope:                  Scope,
        role:                   TurnRole,
        content:                str,
        user_id:                uuid.UUID | None          = None,
        context_document_ids:   Sequence[uuid.UUID]       = (),
        grounding_insufficient: bool                      = False,
        fallback:               bool                      = False,
        now:                    datetime | None           = None,
    ) -> ConversationTurn: ...

    @abstractmethod
    async def recent_turns(self, scope: Scope, limit: int) -> list[ConversationTurn]:
        """Last `limit` turns, ascending."""

    @abstractmethod
    async def list_turns(
        self, scope: Scope, limit: int, after_seq: int | None = None,
    ) -> list[ConversationTurn]:
        """Up to `limit` turns with seq > after_seq, ascending."""


# ---------------------------------------------------------------------------
# Row ↔ schema mapping
# ---------------------------------------------------------------------------

def _document(row: DocumentRow) -> UploadedDocument:
    return UploadedDocument(
        document_id=row.id,
        tenant_id=row.tenant_id,
        project_id=row.project_id,
        location=row.location,
        original_name=row.original_name,
        content_type=row.content_type,
        size_bytes=row.size_bytes,
        checksum=row.checksum,
        uploaded_by=row.uploaded_by,
        status=DocumentStatus(row.status),
        error_message=row.error_message,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _analysis(row: AnalysisRow) -> AnalysisResult:
    return AnalysisResult(
        summary=row.summary,
        red_flags=tuple(row.red_flags or ()),
        highlights=tuple(row.highlights or ()),
        confidence_score=row.confidence_score,
        processing_time_ms=row.processing_time_ms,
        insufficient_information=row.insufficient_information,
        profile=ExtractionProfile(row.profile),
        document_id=row.document_id,
        extraction_version=row.extraction_version,
        created_at=_utc(row.created_at),
    )


def _turn(row: ConversationTurnRow) -> ConversationTurn:
    return ConversationTurn(
        id=row.id,
        tenant_id=row.tenant_id,
        project_id=row.project_id,
        seq=row.seq,
        role=TurnRole(row.role),
        content=row.content,
        created_at=_utc(row.created_at),
        user_id=row.user_id,
        context_document_ids=tuple(uuid.UUID(str(d)) for d in row.context_document_ids or ()),
        grounding_insufficient=row.grounding_insufficient,
        fallback=row.fallback,
    )


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

class SqlAlchemyRepository(Repository):

    def __init__(self, sessions: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._sessions = sessions

    def _scope(self):
        return session_scope(self._sessions)

    @staticmethod
    async def _document_row(session: AsyncSession, document_id: uuid.UUID) -> DocumentRow:
        row = await session.get(DocumentRow, document_id)
        if row is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return row

    # documents -----------------------------------------------------------

    async def create_document(self, document: UploadedDocument) -> UploadedDocument:
        row = DocumentRow(
            id=document.document_id,
            tenant_id=document.tenant_id,
            project_id=document.project_id,
            location=document.location,
            original_name=document.original_name,
            content_type=document.content_type,
            size_bytes=document.size_bytes,
            checksum=document.checksum,
            uploaded_by=document.uploaded_by,
            status=document.status.value,
            error_message=document.error_message,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )
        async with self._scope() as session:
            session.add(row)
        logger.debug("Repository | document created id=%s", document.document_id)
        return document

    async def get_document(self, document_id: uuid.UUID) -> UploadedDocument:
        async with self._scope() as session:
            return _document(await self._document_row(session, document_id))

    async def set_document_status(
        self,
        document_id:   uuid.UUID,
        status:        DocumentStatus,
        error_message: str | None = None,
    ) -> UploadedDocument:
        async with self._scope() as session:
            row = await self._document_row(session, document_id)
            row.status        = status.value
            row.error_message = error_message
            row.updated_at    = utcnow()
            return _document(row)

    async def delete_document(self, document_id: uuid.UUID) -> None:
        async with self._scope() as session:
            await session.execute(delete(AnalysisRow).where(AnalysisRow.document_id == document_id))
            await session.execute(delete(ExtractionRow).where(ExtractionRow.document_id == document_id))
            await session.execute(delete(DocumentRow).where(DocumentRow.id == document_id))

    # extractions / analyses ----------------------------------------------

    async def save_extraction(self, document_id: uuid.UUID, record: CanonicalExtraction) -> int:
        async with self._scope() as session:
            await self._document_row(session, document_id)
            current = await session.scalar(
                select(func.max(ExtractionRow.version)).where(
                    ExtractionRow.document_id == document_id,
                    ExtractionRow.profile == record.profile.value,
                )
            )
            version = (current or 0) + 1
            session.add(ExtractionRow(
                document_id=document_id,
                profile=record.profile.value,
                version=version,
                model_id=record.model_id,
                payload=record.to_payload(),
                created_at=utcnow(),
            ))
        logger.debug(
            "Repository | extraction saved document=%s profile=%s version=%d",
            document_id, record.profile.value, version,
        )
        return version

    async def latest_extraction(
        self, document_id: uuid.UUID, profile: ExtractionProfile,
    ) -> tuple[int, CanonicalExtraction] | None:
        async with self._scope() as session:
            row = await session.scalar(
                select(ExtractionRow)
                .where(ExtractionRow.document_id == document_id, ExtractionRow.profile == profile.value)
                .order_by(ExtractionRow.version.desc())
                .limit(1)
            )
            if row is None:
                return None
            return row.version, CanonicalExtraction.model_validate(row.payload)

    async def save_analysis(self, result: AnalysisResult) -> AnalysisResult:
        if result.document_id is None or result.profile is None or result.extraction_version is None:
            raise ValueError("AnalysisResult must carry document_id, profile and extraction_version")
        created_at = result.created_at or utcnow()
        async with self._scope() as session:
            session.add(AnalysisRow(
                document_id=result.document_id,
                profile=result.profile.value,
                extraction_version=result.extraction_version,
                summary=result.summary,
                red_flags=list(result.red_flags),
                highlights=list(result.highlights),
                confidence_score=result.confidence_score,
                processing_time_ms=result.processing_time_ms,
                insufficient_information=result.insufficient_information,
                created_at=created_at,
            ))
        return result.model_copy(update={"created_at": created_at})

    async def latest_analysis(
        self, document_id: uuid.UUID, profile: ExtractionProfile | None = None,
    ) -> AnalysisResult | None:
        stmt = select(AnalysisRow).where(AnalysisRow.document_id == document_id)
        if profile is not None:
            stmt = stmt.where(AnalysisRow.profile == profile.value)
        stmt = stmt.order_by(AnalysisRow.created_at.desc(), AnalysisRow.extraction_version.desc()).limit(1)
        async with self._scope() as session:
            row = await session.scalar(stmt)
            return _analysis(row) if row is not None else None

    async def list_analyses(self, scope: Scope) -> list[DocumentAnalysis]:
        async with self._scope() as session:
            rows = (await session.execute(
                select(DocumentRow, AnalysisRow)
                .join(AnalysisRow, AnalysisRow.document_id == DocumentRow.id)
                .where(DocumentRow.tenant_id == scope.tenant_id, DocumentRow.project_id == scope.project_id)
                .order_by(AnalysisRow.created_at.desc(), AnalysisRow.extraction_version.desc())
            )).all()

        latest: dict[uuid.UUID, DocumentAnalysis] = {}
        for doc_row, analysis_row in rows:
            if doc_row.id not in latest:
                latest[doc_row.id] = DocumentAnalysis(_document(doc_row), _analysis(analysis_row))
        return list(latest.values())

    # conversation --------------------------------------------------------

    async def append_turn(
        self,
        scope:                  Scope,
        role:                   TurnRole,
        content:                str,
        user_id:                uuid.UUID | None    = None,
        context_document_ids:   Sequence[uuid.UUID] = (),
        grounding_insufficient: bool                = False,
        fallback:               bool                = False,
        now:                    datetime | None     = None,
    ) -> ConversationTurn:
        async with self._scope() as session:
            last = await session.scalar(
                select(ConversationTurnRow)
                .where(
                    ConversationTurnRow.tenant_id == scope.tenant_id,
                    ConversationTurnRow.project_id == scope.project_id,
                )
                .order_by(ConversationTurnRow.seq.desc())
                .limit(1)
            )
            row = ConversationTurnRow(
                id=uuid.uuid4(),
                tenant_id=scope.tenant_id,
                project_id=scope.project_id,
                seq=(last.seq + 1) if last else 1,
                role=role.value,
                content=content,
                user_id=user_id,
                context_document_ids=[str(d) for d in context_document_ids],
                grounding_insufficient=grounding_insufficient,
                fallback=fallback,
                created_at=next_timestamp(now or utcnow(), _utc(last.created_at) if last else None),
            )
            session.add(row)
            return _turn(row)

    async def recent_turns(self, scope: Scope, limit: int) -> list[ConversationTurn]:
        async with self._scope() as session:
            rows = (await session.scalars(
                select(ConversationTurnRow)
                .where(
                    ConversationTurnRow.tenant_id == scope.tenant_id,
                    ConversationTurnRow.project_id == scope.project_id,
                )
                .order_by(ConversationTurnRow.seq.desc())
                .limit(limit)
            )).all()
        return [_turn(r) for r in reversed(rows)]

    async def list_turns(
        self, scope: Scope, limit: int, after_seq: int | None = None,
    ) -> list[ConversationTurn]:
        stmt = select(ConversationTurnRow).where(
            ConversationTurnRow.tenant_id == scope.tenant_id,
            ConversationTurnRow.project_id == scope.project_id,
        )
        if after_seq is not None:
            stmt = stmt.where(ConversationTurnRow.seq > after_seq)
        async with self._scope() as session:
            rows = (await session.scalars(stmt.order_by(ConversationTurnRow.seq.asc()).limit(limit))).all()
        return [_turn(r) for r in rows]
