"""
LLM Fallback Chain — automatic provider failover

When the primary provider returns a transient error (5xx, rate limit,
timeout), the chain tries the next eligible provider until one succeeds
or all are exhausted.

Retry policy:
  - Retryable:     RateLimitError, APITimeoutError, APIConnectionError,
                   InternalServerError, transport timeouts
  - Non-retryable: 4xx (bad request, auth failure), raised immediately
  - Per-attempt timeout: settings.completion_timeout_seconds
  - All providers failed → ServiceUnavailableError, so the caller's retry
    envelope can back off and try the whole chain again

Circuit breaker:
  A provider failing OPEN_THRESHOLD consecutive times is skipped until
  RESET_SECONDS have elapsed (in-process counter).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from langchain_core.messages import AIMessage, BaseMessage

from audit_assistant.core.config import settings
from audit_assistant.core.errors import ServiceUnavailableError
from audit_assistant.core.retry import is_retryable
from audit_assistant.llm.router import ModelRequirements, ModelRouter, ModelSpec, Provider

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Circuit breaker (in-process)
# ---------------------------------------------------------------------------

@dataclass
class _CircuitState:
    failures:       int   = 0
    open_until:     float = 0.0        # monotonic time after which to retry
    OPEN_THRESHOLD: int   = 3
    RESET_SECONDS:  int   = 60


_CIRCUIT_STATES: dict[Provider, _CircuitState] = {p: _CircuitState() for p in Provider}


def _is_circuit_open(provider: Provider) -> bool:
    state = _CIRCUIT_STATES[provider]
    if state.failures < state.OPEN_THRESHOLD:
        return False
    if time.monotonic() >= state.open_until:
        state.failures = 0     # half-open
        return False
    return True


def _record_failure(provider: Provider) -> None:
    state = _CIRCUIT_STATES[provider]
    state.failures  += 1
    state.open_until = time.monotonic() + state.RESET_SECONDS
    logger.warning(
        "Circuit breaker | provider=%s failures=%d open_until=+%ds",
        provider.value, state.failures, state.RESET_SECONDS,
    )


def _record_success(provider: Provider) -> None:
    _CIRCUIT_STATES[provider].failures = 0


def reset_circuits() -> None:
    for state in _CIRCUIT_STATES.values():
        state.failures   = 0
        state.open_until = 0.0


# ---------------------------------------------------------------------------
# FallbackChain
# ---------------------------------------------------------------------------

@dataclass
class ChainResult:
    message: AIMessage
    spec:    ModelSpec
    errors:  list[str] = field(default_factory=list)


class FallbackChain:
    """
    Ordered chain of providers with automatic failover.

        chain  = FallbackChain(ModelRequirements(require_json_mode=True))
        result = await chain.ainvoke(messages)
    """

    def __init__(
        self,
        requirements:        ModelRequirements | None = None,
        router:              ModelRouter | None       = None,
        per_attempt_timeout: float | None             = None,
    ) -> None:
        self._requirements        = requirements or ModelRequirements()
        self._router              = router or ModelRouter()
        self._per_attempt_timeout = per_attempt_timeout or settings.completion_timeout_seconds
        self._specs               = self._router.candidates(self._requirements)

    async def ainvoke(self, messages: list[BaseMessage]) -> ChainResult:
        """
        Raises:
            ServiceUnavailableError: every provider failed transiently.
            Exception:               first non-retryable provider error.
        """
        errors: list[str] = []

        for spec in self._specs:
            if _is_circuit_open(spec.provider):
                logger.debug("Skipping provider=%s (circuit open)", spec.provider.value)
                errors.append(f"{spec.provider.value}/{spec.model_id}: circuit open")
                continue

            llm = self._router.build_llm(spec, self._requirements)
            try:
                logger.debug(
                    "FallbackChain | trying provider=%s model=%s",
                    spec.provider.value, spec.model_id,
                )
                message = await asyncio.wait_for(
                    llm.ainvoke(messages),
                    timeout=self._per_attempt_timeout,
                )
                _record_success(spec.provider)
                return ChainResult(message=message, spec=spec, errors=errors)  # type: ignore[arg-type]

            except asyncio.TimeoutError:
                err = f"{spec.provider.value}/{spec.model_id}: timed out after {self._per_attempt_timeout}s"
                logger.warning("FallbackChain | %s", err)
                _record_failure(spec.provider)
                errors.append(err)

            except Exception as exc:
                if not is_retryable(exc):
                    raise
                err = f"{spec.provider.value}/{spec.model_id}: {type(exc).__name__}: {exc}"
                logger.warning("FallbackChain | retryable error: %s", err)
                _record_failure(spec.provider)
                errors.append(err)

        raise ServiceUnavailableError(
            "All LLM providers failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )
