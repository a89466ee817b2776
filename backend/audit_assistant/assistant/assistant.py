"""
Conversational Assistant — project-scoped, grounded Q&A

Per-scope state machine:

    Idle ──chat()──▶ AwaitingRetrieval ──context ready──▶ AwaitingGeneration
     ▲                                                          │
     └──────────── assistant turn appended ◀───────────────────┘

chat(scope, message):
  1. append the user turn
  2. gather grounding: last N turns, scoped search hits for the message,
     stored analysis summaries for the scope
  3. no document context at all → fixed insufficient-context reply,
     flagged, no completion call
  4. one completion (inside the retry/timeout envelope); a reply that
     declines for lack of context is flagged as grounding-insufficient
  5. append the assistant turn, tagged with the document ids used

A completion failure after the envelope's budget yields a fixed apology
turn (fallback=True); the conversation stays consistent either way.

Turns for one scope are serialized by an asyncio.Lock, so a scope never
has two chats interleaving their appends.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from enum import Enum

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from audit_assistant.assistant.prompts import (
    APOLOGY_REPLY,
    CHAT_SYSTEM_PROMPT,
    INSUFFICIENT_CONTEXT_MARKER,
    INSUFFICIENT_CONTEXT_REPLY,
    build_context,
)
from audit_assistant.assistant.suggestions import suggested_questions
from audit_assistant.core.config import settings
from audit_assistant.core.errors import GroundingInsufficientError, ValidationError
from audit_assistant.core.retry import RetryPolicy, with_retry
from audit_assistant.db.repository import Repository
from audit_assistant.llm.base import CompletionService
from audit_assistant.observability.tracing import track_event, traced
from audit_assistant.schemas.conversation import ConversationTurn, HistoryPage, TurnRole
from audit_assistant.schemas.documents import Scope
from audit_assistant.search.indexer import SearchIndexer

logger = logging.getLogger(__name__)


class AssistantState(str, Enum):
    IDLE                = "idle"
    AWAITING_RETRIEVAL  = "awaiting_retrieval"
    AWAITING_GENERATION = "awaiting_generation"


def check_grounding(reply: str) -> str:
    """Raise GroundingInsufficientError when the model declined to answer."""
    if reply.strip().lower().startswith(INSUFFICIENT_CONTEXT_MARKER.lower()):
        raise GroundingInsufficientError(reply)
    return reply


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class ConversationalAssistant:

    def __init__(
        self,
        repository:     Repository,
        indexer:        SearchIndexer,
        completions:    CompletionService,
        policy:         RetryPolicy | None = None,
        deadline:       float | None       = None,
        history_window: int | None         = None,
        search_limit:   int | None         = None,
    ) -> None:
        self._repo           = repository
        self._indexer        = indexer
        self._completions    = completions
        self._policy         = policy or RetryPolicy.from_settings()
        self._deadline       = settings.completion_timeout_seconds if deadline is None else deadline
        self._history_window = history_window or settings.chat_history_window
        self._search_limit   = search_limit or settings.chat_search_limit

        self._locks:  dict[tuple[uuid.UUID, uuid.UUID], asyncio.Lock]   = {}
        self._states: dict[tuple[uuid.UUID, uuid.UUID], AssistantState] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @staticmethod
    def _key(scope: Scope) -> tuple[uuid.UUID, uuid.UUID]:
        return scope.tenant_id, scope.project_id

    def state(self, scope: Scope) -> AssistantState:
        return self._states.get(self._key(scope), AssistantState.IDLE)

    def _set_state(self, scope: Scope, state: AssistantState) -> None:
        self._states[self._key(scope)] = state
        logger.debug("Assistant | scope=%s state=%s", scope, state.value)

    def _lock(self, scope: Scope) -> asyncio.Lock:
        return self._locks.setdefault(self._key(scope), asyncio.Lock())

    # ------------------------------------------------------------------
    # chat
    # ------------------------------------------------------------------

    @traced("assistant.chat")
    async def chat(self, scope: Scope, message: str, user_id: uuid.UUID | None = None) -> ConversationTurn:
        message = (message or "").strip()
        if not message:
            raise ValidationError("Message must not be empty.")

        async with self._lock(scope):
            try:
                self._set_state(scope, AssistantState.AWAITING_RETRIEVAL)
                await self._repo.append_turn(scope, TurnRole.USER, message, user_id=user_id)
                reply = await self._respond(scope, message)
            finally:
                self._set_state(scope, AssistantState.IDLE)

        track_event(
            "assistant_reply",
            scope=str(scope),
            context_documents=len(reply.context_document_ids),
            grounding_insufficient=reply.grounding_insufficient,
            fallback=reply.fallback,
        )
        return reply

    async def _respond(self, scope: Scope, message: str) -> ConversationTurn:
        # Prior turns, excluding the user turn just appended
        turns = await self._repo.recent_turns(scope, self._history_window + 1)
        prior = turns[:-1]

        try:
            hits = await self._indexer.search(message, scope=scope, limit=self._search_limit)
        except Exception as exc:
            logger.error("Assistant | retrieval failed, continuing without hits: %s", exc, exc_info=True)
            hits = []
        analyses = await self._repo.list_analyses(scope)

        context_ids: list[uuid.UUID] = []
        for candidate in [*(h.document_id for h in hits), *(a.document.document_id for a in analyses)]:
            doc_id = _as_uuid(str(candidate))
            if doc_id is not None and doc_id not in context_ids:
                context_ids.append(doc_id)

        if not context_ids:
            logger.info("Assistant | no grounding context scope=%s", scope)
            return await self._repo.append_turn(
                scope, TurnRole.ASSISTANT, INSUFFICIENT_CONTEXT_REPLY,
                grounding_insufficient=True,
            )

        self._set_state(scope, AssistantState.AWAITING_GENERATION)
        messages = self._build_messages(build_context(hits, analyses), prior, message)

        try:
            completion = await with_retry(
                lambda: self._completions.complete(messages, temperature=settings.chat_temperature),
                context=f"chat:{scope}",
                policy=self._policy,
                deadline=self._deadline,
            )
        except Exception as exc:
            logger.error("Assistant | generation failed, replying with apology: %s", exc)
            return await self._repo.append_turn(
                scope, TurnRole.ASSISTANT, APOLOGY_REPLY,
                context_document_ids=context_ids,
                fallback=True,
            )

        reply = completion.content.strip()
        try:
            check_grounding(reply)
            insufficient = False
        except GroundingInsufficientError:
            logger.info("Assistant | model declined for lack of context scope=%s", scope)
            insufficient = True

        return await self._repo.append_turn(
            scope, TurnRole.ASSISTANT, reply,
            context_document_ids=context_ids,
            grounding_insufficient=insufficient,
        )

    @staticmethod
    def _build_messages(context: str, prior: list[ConversationTurn], message: str) -> list[BaseMessage]:
        messages: list[BaseMessage] = [SystemMessage(content=f"{CHAT_SYSTEM_PROMPT}\n\n{context}")]
        for turn in prior:
            if turn.role is TurnRole.USER:
                messages.append(HumanMessage(content=turn.content))
            else:
                messages.append(AIMessage(content=turn.content))
        messages.append(HumanMessage(content=message))
        return messages

    # ------------------------------------------------------------------
    # history / suggestions
    # ------------------------------------------------------------------

    async def history(self, scope: Scope, limit: int | None = None, cursor: int | None = None) -> HistoryPage:
        limit = limit or settings.chat_history_page
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        turns = await self._repo.list_turns(scope, limit + 1, after_seq=cursor)
        page  = turns[:limit]
        next_cursor = page[-1].seq if len(turns) > limit else None
        return HistoryPage(turns=page, next_cursor=next_cursor)

    async def suggested_questions(self, scope: Scope, client_name: str | None = None) -> list[str]:
        return suggested_questions(await self._repo.list_analyses(scope), client_name)
