"""
Observability — tracing backends, timing decorator and named events.

Three concerns live here:

  TracingConfig.init()
    Activates LangSmith (env-driven, picked up by LangChain automatically).

  @traced(name)
    Instruments any async function with timing and error logging.
    Works regardless of backend; plain Python logging is the baseline.

  track_event(name, **properties)
    Named observability events (operation_retry, document_analyzed, ...).
    Always logged; additionally fanned out to registered listeners so
    tests and metric exporters can observe them without patching loggers.

Environment variables:
  LANGCHAIN_TRACING_V2=true
  LANGCHAIN_API_KEY=ls__...
  LANGCHAIN_PROJECT=audit-assistant
"""

from __future__ import annotations

import functools
import logging
import os
import time
from typing import Any, Callable, Coroutine, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

EventListener = Callable[[str, dict], None]


# ---------------------------------------------------------------------------
# TracingConfig: initialise at startup
# ---------------------------------------------------------------------------

class TracingConfig:
    """
    Seed LangSmith tracing from settings. LangChain picks the env vars up on
    its own; values already present in the environment win.

    Call once at startup::

        TracingConfig.init()
    """

    _initialised: bool = False

    @classmethod
    def init(cls) -> None:
        if cls._initialised:
            return
        cls._initialised = True

        from audit_assistant.core.config import settings

        if settings.langsmith_api_key and not os.environ.get("LANGCHAIN_API_KEY"):
            os.environ["LANGCHAIN_TRACING_V2"] = "true"
            os.environ["LANGCHAIN_API_KEY"]    = settings.langsmith_api_key
            os.environ.setdefault("LANGCHAIN_PROJECT", settings.langsmith_project)
            logger.info("LangSmith tracing enabled | project=%s", os.environ["LANGCHAIN_PROJECT"])
        elif os.environ.get("LANGCHAIN_TRACING_V2") == "true":
            logger.info("LangSmith tracing active (from env) | project=%s",
                        os.environ.get("LANGCHAIN_PROJECT", "default"))
        else:
            logger.debug("LangSmith tracing disabled")


# ---------------------------------------------------------------------------
# Named events
# ---------------------------------------------------------------------------

_EVENT_LISTENERS: list[EventListener] = []


def add_event_listener(listener: EventListener) -> None:
    _EVENT_LISTENERS.append(listener)


def remove_event_listener(listener: EventListener) -> None:
    if listener in _EVENT_LISTENERS:
        _EVENT_LISTENERS.remove(listener)


def track_event(name: str, **properties: Any) -> None:
    """
    Emit a named observability event.

    Listener failures are logged and swallowed; telemetry never breaks
    the operation being observed.
    """
    logger.info(
        "event | name=%s %s",
        name, " ".join(f"{k}={v}" for k, v in properties.items()),
    )
    for listener in list(_EVENT_LISTENERS):
        try:
            listener(name, properties)
        except Exception as exc:
            logger.warning("event listener failed (non-fatal) | name=%s error=%s", name, exc)


# ---------------------------------------------------------------------------
# @traced decorator
# ---------------------------------------------------------------------------

def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Decorator that instruments an async function with timing and error logging.

    Usage::

        @traced("extraction.analyze")
        async def analyze(location: str, profile: str) -> CanonicalExtraction:
            ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.debug("trace | span=%s elapsed_ms=%.1f ok", span_name, elapsed_ms)
                return result
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.error(
                    "trace | span=%s elapsed_ms=%.1f error=%s",
                    span_name, elapsed_ms, exc, exc_info=True,
                )
                raise

        return wrapper  # type: ignore[return-value]
    return decorator
