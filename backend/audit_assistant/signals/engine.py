"""
Derived-Signal Engine — canonical record → AnalysisResult

  1. Empty record            → fixed "insufficient information" result,
                               no completion call
  2. Grounded prompt         → one completion (JSON mode) inside the
                               retry/timeout envelope
  3. Parse                   → summary / red_flags / highlights; on
                               unparseable output the summary falls back to
                               the first 500 chars of the reply, lists empty
  4. Confidence (computed)   → mean of the entity confidences the service
                               reported, or 0.75 when none are reported but
                               there is content; minus
                               0.15 per missing required profile field;
                               clipped to [0, 1]

processing_time_ms here covers the completion step only; DocumentPipeline
rewrites it to span extraction submission through signal availability.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage

from audit_assistant.core.config import settings
from audit_assistant.core.retry import RetryPolicy, with_retry
from audit_assistant.llm.base import CompletionService
from audit_assistant.observability.tracing import traced
from audit_assistant.schemas.analysis import AnalysisResult
from audit_assistant.schemas.extraction import CanonicalExtraction
from audit_assistant.signals.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    INSUFFICIENT_MARKER,
    build_analysis_prompt,
)

logger = logging.getLogger(__name__)

NO_ENTITY_BASE_CONFIDENCE = 0.75
MISSING_FIELD_PENALTY     = 0.15
FALLBACK_SUMMARY_CHARS    = 500

EMPTY_DOCUMENT_SUMMARY = f"{INSUFFICIENT_MARKER} to analyze this document."

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def compute_confidence(extraction: CanonicalExtraction) -> float:
    if extraction.is_empty:
        return 0.0
    reported = [e.confidence for e in extraction.entities if e.confidence is not None]
    base = sum(reported) / len(reported) if reported else NO_ENTITY_BASE_CONFIDENCE
    penalty = MISSING_FIELD_PENALTY * len(extraction.missing_required_fields())
    return round(min(1.0, max(0.0, base - penalty)), 4)


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip())


def parse_signals(reply: str) -> tuple[str, tuple[str, ...], tuple[str, ...], bool]:
    """
    Returns (summary, red_flags, highlights, parsed_ok).
    Accepts camelCase keys too (redFlags) since models drift between styles.
    """
    text = _FENCE_RE.sub("", reply.strip())
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        data = None

    if not isinstance(data, dict):
        return reply[:FALLBACK_SUMMARY_CHARS], (), (), False

    summary    = str(data.get("summary") or "")
    red_flags  = _string_list(data.get("red_flags", data.get("redFlags")))
    highlights = _string_list(data.get("highlights"))
    return summary, red_flags, highlights, True


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class DerivedSignalEngine:

    def __init__(
        self,
        completions: CompletionService,
        policy:      RetryPolicy | None = None,
        deadline:    float | None       = None,
    ) -> None:
        self._completions = completions
        self._policy      = policy or RetryPolicy.from_settings()
        self._deadline    = settings.analysis_timeout_seconds if deadline is None else deadline

    @traced("signals.derive")
    async def derive_signals(self, extraction: CanonicalExtraction) -> AnalysisResult:
        t0 = time.perf_counter()

        if extraction.is_empty:
            logger.info("DerivedSignalEngine | empty record profile=%s", extraction.profile.value)
            return AnalysisResult(
                summary=EMPTY_DOCUMENT_SUMMARY,
                confidence_score=0.0,
                processing_time_ms=(time.perf_counter() - t0) * 1000,
                insufficient_information=True,
                profile=extraction.profile,
            )

        messages = [
            SystemMessage(content=ANALYSIS_SYSTEM_PROMPT),
            HumanMessage(content=build_analysis_prompt(extraction)),
        ]

        completion = await with_retry(
            lambda: self._completions.complete(
                messages,
                temperature=settings.analysis_temperature,
                max_tokens=settings.llm_max_tokens,
                json_mode=True,
            ),
            context=f"signals:{extraction.profile.value}",
            policy=self._policy,
            deadline=self._deadline,
        )

        summary, red_flags, highlights, parsed_ok = parse_signals(completion.content)
        if not parsed_ok:
            logger.warning("DerivedSignalEngine | unparseable reply, using text fallback")

        result = AnalysisResult(
            summary=summary,
            red_flags=red_flags,
            highlights=highlights,
            confidence_score=compute_confidence(extraction),
            processing_time_ms=(time.perf_counter() - t0) * 1000,
            insufficient_information=summary.strip().lower().startswith(INSUFFICIENT_MARKER.lower()),
            profile=extraction.profile,
        )
        logger.info(
            "DerivedSignalEngine | profile=%s red_flags=%d highlights=%d confidence=%.2f elapsed_ms=%.1f",
            extraction.profile.value, len(result.red_flags), len(result.highlights),
            result.confidence_score, result.processing_time_ms,
        )
        return result
