"""
Observability Package — tracing backends, timing decorator, named events.

Usage::

    from audit_assistant.observability import TracingConfig, track_event
    TracingConfig.init()
    track_event("document_analyzed", document_id=str(doc_id))
"""

from audit_assistant.observability.tracing import (
    TracingConfig,
    add_event_listener,
    remove_event_listener,
    track_event,
    traced,
)

__all__ = ["TracingConfig", "traced", "track_event", "add_event_listener", "remove_event_listener"]
