"""
LLM Model Router — provider selection

Answers "which models, in which order, can serve this request?"

Providers:
  OPENAI        primary, configured by OPENAI_API_KEY
  AZURE_OPENAI  fallback, same model family, different endpoint; only
                registered when AZURE_OPENAI_ENDPOINT is set

Hard constraints:
  require_json_mode → only models supporting JSON response format

Ordering: quality_score descending, OpenAI before Azure on ties.

The router is pure Python (no I/O). build_llm() returns the LangChain chat
model; the fallback chain calls .ainvoke() on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from langchain_core.language_models.chat_models import BaseChatModel

from audit_assistant.core.config import settings

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    OPENAI       = "openai"
    AZURE_OPENAI = "azure_openai"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for one model/provider combination."""
    model_id:           str
    provider:           Provider
    quality_score:      float
    supports_json_mode: bool = True


@dataclass
class ModelRequirements:
    """Per-request constraints and sampling parameters."""
    require_json_mode: bool         = False
    temperature:       float | None = None
    max_tokens:        int | None   = None


def registered_models() -> list[ModelSpec]:
    """Models available under the current configuration."""
    specs = [ModelSpec(model_id=settings.llm_model, provider=Provider.OPENAI, quality_score=9.0)]
    if settings.azure_openai_endpoint:
        specs.append(ModelSpec(
            model_id=settings.azure_openai_deployment,
            provider=Provider.AZURE_OPENAI,
            quality_score=9.0,
        ))
    return specs


class ModelRouter:
    """
    Usage::

        router = ModelRouter()
        for spec in router.candidates(ModelRequirements(require_json_mode=True)):
            llm = router.build_llm(spec, ModelRequirements(require_json_mode=True))
    """

    def __init__(self, models: list[ModelSpec] | None = None) -> None:
        self._models = models

    def candidates(self, requirements: ModelRequirements) -> list[ModelSpec]:
        """
        Eligible specs in fallback order.

        Raises:
            RuntimeError: If no registered model satisfies the constraints.
        """
        models = self._models if self._models is not None else registered_models()
        eligible = [
            spec for spec in models
            if not requirements.require_json_mode or spec.supports_json_mode
        ]
        if not eligible:
            raise RuntimeError(f"No LLM satisfies constraints: json={requirements.require_json_mode}")

        order = {Provider.OPENAI: 0, Provider.AZURE_OPENAI: 1}
        eligible.sort(key=lambda s: (-s.quality_score, order[s.provider]))
        return eligible

    def select(self, requirements: ModelRequirements) -> ModelSpec:
        selected = self.candidates(requirements)[0]
        logger.debug(
            "ModelRouter | selected model_id=%s provider=%s",
            selected.model_id, selected.provider.value,
        )
        return selected

    def build_llm(self, spec: ModelSpec, requirements: ModelRequirements) -> BaseChatModel:
        if spec.provider == Provider.OPENAI:
            return self._build_openai(spec, requirements)
        if spec.provider == Provider.AZURE_OPENAI:
            return self._build_azure_openai(spec, requirements)
        raise ValueError(f"Unsupported provider: {spec.provider}")   # pragma: no cover

    # -----------------------------------------------------------------------
    # Provider-specific builders
    # -----------------------------------------------------------------------

    @staticmethod
    def _sampling(requirements: ModelRequirements) -> dict:
        kwargs: dict = {
            "temperature": settings.analysis_temperature if requirements.temperature is None
                           else requirements.temperature,
            "max_tokens":  requirements.max_tokens or settings.llm_max_tokens,
        }
        if requirements.require_json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        return kwargs

    @classmethod
    def _build_openai(cls, spec: ModelSpec, requirements: ModelRequirements) -> BaseChatModel:
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=spec.model_id,
            api_key=settings.openai_api_key,
            **cls._sampling(requirements),
        )

    @classmethod
    def _build_azure_openai(cls, spec: ModelSpec, requirements: ModelRequirements) -> BaseChatModel:
        from langchain_openai import AzureChatOpenAI
        return AzureChatOpenAI(
            azure_deployment=spec.model_id,
            azure_endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,   # type: ignore[arg-type]
            api_version=settings.azure_openai_api_version,
            **cls._sampling(requirements),
        )
