"""Prompt templates for derived-signal extraction."""

from __future__ import annotations

import json
from typing import Final

from audit_assistant.schemas.extraction import CanonicalExtraction

INSUFFICIENT_MARKER: Final = "Insufficient information"

ANALYSIS_SYSTEM_PROMPT: Final = (
    "You are an expert financial auditor. Analyze ONLY the document data provided "
    "by the user. Do not use outside knowledge and do not guess values that are "
    "not present in the data. If the data does not support a finding, omit it. "
    f"If the data is too sparse to analyze, set the summary to \"{INSUFFICIENT_MARKER}.\" "
    "and return empty lists."
)

ANALYSIS_USER_TEMPLATE: Final = """\
Analyze the following {profile} document data and provide:

1. A concise summary (2-3 sentences)
2. Red flags or potential issues (list)
3. Key highlights or positive findings (list)

Document Data:
{data}

Respond with JSON only, using exactly this structure:
{{
    "summary": "Your summary here",
    "red_flags": ["flag1", "flag2"],
    "highlights": ["highlight1", "highlight2"]
}}
"""

# Keeps very long documents inside the model's context window
_MAX_CONTENT_CHARS: Final = 12_000


def render_document_data(extraction: CanonicalExtraction) -> str:
    payload = extraction.to_payload()
    payload.pop("model_id", None)
    content = payload.get("content", "")
    if len(content) > _MAX_CONTENT_CHARS:
        payload["content"] = content[:_MAX_CONTENT_CHARS] + " …[truncated]"
    return json.dumps(payload, indent=2, ensure_ascii=False)


def build_analysis_prompt(extraction: CanonicalExtraction) -> str:
    return ANALYSIS_USER_TEMPLATE.format(
        profile=extraction.profile.value,
        data=render_document_data(extraction),
    )
