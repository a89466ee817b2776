"""
LLM Package

Provider-agnostic completion interface:
  - OpenAI        (primary)
  - Azure OpenAI  (same model family, failover target)

Public API::

    from audit_assistant.llm import LLMGateway

    gateway    = LLMGateway()
    completion = await gateway.complete(messages, json_mode=True)
"""

from audit_assistant.llm.base import Completion, CompletionService
from audit_assistant.llm.gateway import LLMGateway
from audit_assistant.llm.router import ModelRequirements, ModelRouter, ModelSpec, Provider

__all__ = [
    "Completion",
    "CompletionService",
    "LLMGateway",
    "ModelRequirements",
    "ModelRouter",
    "ModelSpec",
    "Provider",
]
