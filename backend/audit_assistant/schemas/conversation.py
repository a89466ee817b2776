"""Conversation schemas — turns and paginated history."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TurnRole(str, Enum):
    USER      = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """
    One append-only message in a project conversation.

    `seq` is the per-scope sequence number (1, 2, 3 …); together with the
    strictly increasing `created_at` it fixes the turn's position.
    """
    model_config = ConfigDict(frozen=True)

    id:                     UUID
    tenant_id:              UUID
    project_id:             UUID
    seq:                    int
    role:                   TurnRole
    content:                str
    created_at:             datetime
    user_id:                UUID | None      = None
    context_document_ids:   tuple[UUID, ...] = ()
    grounding_insufficient: bool             = False
    fallback:               bool             = False


class HistoryPage(BaseModel):
    turns:       list[ConversationTurn]
    next_cursor: int | None = None   # seq to pass as `cursor` for the next page
