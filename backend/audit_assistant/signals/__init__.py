from audit_assistant.signals.engine import DerivedSignalEngine

__all__ = ["DerivedSignalEngine"]
