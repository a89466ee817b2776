"""Prompt templates and fixed replies for the project assistant."""

from __future__ import annotations

from typing import Final, Sequence

from audit_assistant.db.repository import DocumentAnalysis
from audit_assistant.search.base import SearchHit

INSUFFICIENT_CONTEXT_MARKER: Final = "I don't have enough information"

INSUFFICIENT_CONTEXT_REPLY: Final = (
    f"{INSUFFICIENT_CONTEXT_MARKER} in this project's analyzed documents to answer that. "
    "Upload and analyze the relevant documents, then ask again."
)

APOLOGY_REPLY: Final = (
    "I'm sorry, I couldn't generate a response right now. Please try again in a moment."
)

CHAT_SYSTEM_PROMPT: Final = (
    "You are an AI audit assistant. Answer questions about the project's financial "
    "documents and audit findings using ONLY the context provided below. Be precise "
    "and professional, and highlight any compliance or risk issues you see in the "
    "context. Never invent figures, names or dates. If the context does not contain "
    "the answer, reply with a sentence that begins exactly with "
    f"\"{INSUFFICIENT_CONTEXT_MARKER}\" and say what is missing."
)

# Per-source excerpt budget inside the grounding context
EXCERPT_CHARS: Final = 1000


def build_context(hits: Sequence[SearchHit], analyses: Sequence[DocumentAnalysis]) -> str:
    parts = ["Document Analysis Context:"]

    for i, item in enumerate(analyses, start=1):
        a = item.analysis
        parts.append(
            f"\nDocument {i} ({item.document.original_name}):\n"
            f"- Summary: {a.summary or 'No summary available'}\n"
            f"- Red Flags: {', '.join(a.red_flags) if a.red_flags else 'None'}\n"
            f"- Highlights: {', '.join(a.highlights) if a.highlights else 'None'}"
        )

    if hits:
        parts.append("\nRelevant Excerpts:")
        for hit in hits:
            name = hit.metadata.get("original_name") or hit.document_id
            parts.append(f"\n[{name}]\n{hit.text[:EXCERPT_CHARS]}")

    return "\n".join(parts)
