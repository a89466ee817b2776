"""
Completion Service — Abstract Base

The signal engine and the assistant only speak this protocol. The
production implementation is LLMGateway (routing + provider fallback);
tests substitute a scripted fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from langchain_core.messages import BaseMessage


@dataclass
class Completion:
    """The result of a single non-streaming completion call."""
    content:       str
    model_used:    str   = ""
    provider:      str   = ""
    input_tokens:  int   = 0
    output_tokens: int   = 0
    latency_ms:    float = 0.0
    request_id:    str   = ""


class CompletionService(ABC):

    @abstractmethod
    async def complete(
        self,
        messages:    list[BaseMessage],
        temperature: float | None = None,
        max_tokens:  int | None   = None,
        json_mode:   bool         = False,
    ) -> Completion:
        """
        Run one completion.

        Raises:
            TransientServiceError: provider unavailable / rate-limited (retryable).
        """
