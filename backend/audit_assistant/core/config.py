"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///./audit_assistant.db"   # postgresql+asyncpg://... in prod

    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_echo_sql: bool = False   # set True in local dev to log queries

    # ------------------------------------------------------------------
    # AWS S3 evidence storage
    # ------------------------------------------------------------------
    aws_region: str = "us-east-1"
    s3_bucket:  str = "audit-evidence"
    s3_prefix:  str = "projects"

    # Local dev: set these; prod: use ECS task role / IRSA (no static keys)
    aws_access_key_id:     str = ""
    aws_secret_access_key: str = ""

    # Signed URLs handed to the extraction service are short-lived
    signed_url_ttl_seconds: int = 60

    # ------------------------------------------------------------------
    # Document Intelligence (OCR + structured extraction)
    # ------------------------------------------------------------------
    document_intelligence_endpoint:    str = ""
    document_intelligence_key:         str = ""
    document_intelligence_api_version: str = "2023-07-31"

    analysis_timeout_seconds: float = 300.0   # whole envelope, retries included
    extraction_poll_interval: float = 1.0

    extraction_cache_ttl_seconds: int = 3600

    # ------------------------------------------------------------------
    # Retry envelope
    # ------------------------------------------------------------------
    retry_base_delay: float = 1.0   # seconds, doubles each retry

    # ------------------------------------------------------------------
    # Search index
    # ------------------------------------------------------------------
    search_backend: str = "memory"   # "memory" | "weaviate"

    weaviate_url:        str = "http://localhost:8080"
    weaviate_host:       str = "localhost"
    weaviate_port:       int = 8080
    weaviate_api_key:    str = ""   # empty = local/Docker (no auth)
    weaviate_collection: str = "AuditDocuments"

    # ------------------------------------------------------------------
    # LLM
    # ------------------------------------------------------------------
    openai_api_key:  str = ""
    llm_model:       str = "gpt-4o-mini"
    llm_max_tokens:  int = 2000

    # Signal extraction is kept low-temperature; chat slightly warmer
    analysis_temperature: float = 0.3
    chat_temperature:     float = 0.7

    completion_timeout_seconds: float = 60.0

    # Azure OpenAI (fallback provider)
    azure_openai_api_key:     str = ""
    azure_openai_endpoint:    str = ""
    azure_openai_deployment:  str = "gpt-4o"
    azure_openai_api_version: str = "2024-08-01-preview"

    # ------------------------------------------------------------------
    # Assistant
    # ------------------------------------------------------------------
    chat_history_window: int = 10
    chat_search_limit:   int = 5
    chat_history_page:   int = 50

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------
    max_file_size_bytes: int = 50 * 1024 * 1024   # 50 MB

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------
    langsmith_api_key: str = ""
    langsmith_project: str = "audit-assistant"

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env: str = "development"   # development | staging | production
    debug: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def max_attempts(self) -> int:
        """Retry budget for external calls: three tries in production, one elsewhere."""
        return 3 if self.is_production else 1


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
