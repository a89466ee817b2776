"""
LLM Gateway — the production CompletionService

  LLMGateway.complete()
       │
       ▼
  ModelRouter.candidates()   ← eligible providers, fallback order
       │
       ▼
  FallbackChain.ainvoke()    ← auto-failover, circuit breaker
       │
       ▼
  Completion                 ← content + token usage + latency

Token counts come from the provider's usage metadata when present and
fall back to the 4-chars-per-token estimate otherwise.
"""

from __future__ import annotations

import logging
import time
import uuid

from langchain_core.messages import BaseMessage

from audit_assistant.llm.base import Completion, CompletionService
from audit_assistant.llm.fallback import FallbackChain
from audit_assistant.llm.router import ModelRequirements, ModelRouter

logger = logging.getLogger(__name__)


def _estimate_tokens(messages: list[BaseMessage]) -> int:
    """Rough token count: 4 chars ≈ 1 token (OpenAI heuristic)."""
    total_chars = sum(len(m.content) for m in messages if isinstance(m.content, str))
    return max(1, total_chars // 4)


class LLMGateway(CompletionService):
    """
    Provider-agnostic completion interface with routing and fallback.
    Safe for concurrent use; instantiate once per application.
    """

    def __init__(self, router: ModelRouter | None = None, per_attempt_timeout: float | None = None) -> None:
        self._router              = router or ModelRouter()
        self._per_attempt_timeout = per_attempt_timeout

    async def complete(
        self,
        messages:    list[BaseMessage],
        temperature: float | None = None,
        max_tokens:  int | None   = None,
        json_mode:   bool         = False,
    ) -> Completion:
        reqs  = ModelRequirements(require_json_mode=json_mode, temperature=temperature, max_tokens=max_tokens)
        chain = FallbackChain(
            requirements=reqs,
            router=self._router,
            per_attempt_timeout=self._per_attempt_timeout,
        )

        t0      = time.perf_counter()
        result  = await chain.ainvoke(messages)
        latency = (time.perf_counter() - t0) * 1000

        content = result.message.content if isinstance(result.message.content, str) else str(result.message.content)
        usage   = getattr(result.message, "usage_metadata", None) or {}

        completion = Completion(
            content       = content,
            model_used    = result.spec.model_id,
            provider      = result.spec.provider.value,
            input_tokens  = usage.get("input_tokens") or _estimate_tokens(messages),
            output_tokens = usage.get("output_tokens") or max(1, len(content) // 4),
            latency_ms    = latency,
            request_id    = str(uuid.uuid4()),
        )

        logger.info(
            "LLMGateway | model=%s provider=%s tokens_in=%d tokens_out=%d latency_ms=%.1f",
            completion.model_used, completion.provider,
            completion.input_tokens, completion.output_tokens, completion.latency_ms,
        )
        return completion
