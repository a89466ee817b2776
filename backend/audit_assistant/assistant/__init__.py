from audit_assistant.assistant.assistant import AssistantState, ConversationalAssistant

__all__ = ["ConversationalAssistant", "AssistantState"]
