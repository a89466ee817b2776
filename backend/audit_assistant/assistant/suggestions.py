"""Suggested follow-up questions derived from a project's analyses."""

from __future__ import annotations

from typing import Sequence

from audit_assistant.db.repository import DocumentAnalysis

MAX_SUGGESTIONS = 8


def suggested_questions(analyses: Sequence[DocumentAnalysis], client_name: str | None = None) -> list[str]:
    subject = client_name or "this client"
    questions = [
        f"What are the key financial highlights for {subject}?",
        "Are there any compliance issues I should be aware of?",
        "What are the main risk factors identified in the documents?",
        "Can you summarize the financial performance?",
    ]

    if any(item.analysis.red_flags for item in analyses):
        questions.append("What are the most critical red flags found?")
        questions.append("How should I address the identified issues?")

    names = [item.document.original_name.lower() for item in analyses]

    if any("invoice" in n for n in names):
        questions.append("What is the total invoice amount for this period?")
        questions.append("Are there any invoice discrepancies?")

    if any("financial" in n or "statement" in n for n in names):
        questions.append("What is the company's current financial position?")
        questions.append("How does this compare to previous periods?")

    return questions[:MAX_SUGGESTIONS]
