"""
Retry / Timeout Envelope

Wraps any external async operation with bounded retries, exponential
back-off and an overall deadline.

Policy:
  - max_attempts:  3 in production, 1 elsewhere (settings.max_attempts)
  - delay between attempt k and k+1:  base_delay × 2^(k-1)
  - deadline:      bounds the WHOLE envelope (attempts + sleeps); once it
                   expires, OperationTimeoutError is raised regardless of
                   remaining attempts
  - non-retryable: PipelineError subclasses with retryable=False are raised
                   on first occurrence (validation, not-found, ...)
  - exhaustion:    the last underlying error is re-raised unchanged

Observability:
  One `operation_retry` event per retry (never for the first attempt, never
  after the final failure) carrying the context descriptor, the attempt
  number that failed and the error text.

Usage::

    result = await with_retry(
        lambda: service.analyze(model_id, url),
        context="extraction:prebuilt-invoice",
        deadline=settings.analysis_timeout_seconds,
    )
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from audit_assistant.core.errors import OperationTimeoutError, PipelineError
from audit_assistant.observability.tracing import track_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_EVENT = "operation_retry"

# Exception class-name suffixes treated as transient when they are not
# PipelineErrors (raw SDK / transport exceptions that leaked through).
_RETRYABLE_EXCEPTION_TYPES = (
    # openai
    "RateLimitError",
    "APITimeoutError",
    "TimeoutError",
    "APIConnectionError",
    "InternalServerError",
    # httpx / generic
    "ConnectTimeout",
    "ReadTimeout",
    "ConnectError",
    "RemoteProtocolError",
    "ServiceUnavailableError",
)


def is_retryable(exc: BaseException) -> bool:
    """True if the error is worth another attempt."""
    if isinstance(exc, PipelineError):
        return exc.retryable
    name = type(exc).__name__
    return any(name.endswith(r) for r in _RETRYABLE_EXCEPTION_TYPES)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int   = 1
    base_delay:   float = 1.0   # seconds

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        from audit_assistant.core.config import settings
        return cls(max_attempts=settings.max_attempts, base_delay=settings.retry_base_delay)

    def delay_for(self, attempt: int) -> float:
        """Back-off to wait after failed attempt number `attempt` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    context:   str,
    *,
    policy:    RetryPolicy | None = None,
    deadline:  float | None       = None,
    emit:      Callable[..., Any] = track_event,
) -> T:
    """
    Run `operation` under the retry policy and overall deadline.

    Args:
        operation: Zero-arg callable returning a fresh awaitable per attempt.
        context:   Descriptor used in logs and retry events.
        policy:    Defaults to RetryPolicy.from_settings().
        deadline:  Seconds for the whole envelope; None means unbounded.
        emit:      Event sink, called as emit(name, **properties).

    Raises:
        OperationTimeoutError: deadline expired.
        Exception:             the last underlying error after exhaustion,
                               or the first non-retryable one.
    """
    policy = policy or RetryPolicy.from_settings()

    async def _attempts() -> T:
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not is_retryable(exc) or attempt == policy.max_attempts:
                    if attempt > 1:
                        logger.warning(
                            "Retry envelope exhausted | context=%s attempts=%d error=%s",
                            context, attempt, exc,
                        )
                    raise

                delay = policy.delay_for(attempt)
                logger.warning(
                    "Retry envelope | context=%s attempt=%d delay=%.2fs error=%s",
                    context, attempt, delay, exc,
                )
                emit(RETRY_EVENT, context=context, attempt=attempt, error=str(exc))
                await asyncio.sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover

    if deadline is None:
        return await _attempts()

    try:
        return await asyncio.wait_for(_attempts(), timeout=deadline)
    except asyncio.TimeoutError as exc:
        logger.error("Retry envelope timed out | context=%s deadline=%.1fs", context, deadline)
        raise OperationTimeoutError(context, deadline) from exc
