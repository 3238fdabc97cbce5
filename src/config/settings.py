"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources, in priority order:
#
#   1. Environment variables, e.g. OPENAI_API_KEY=sk-abc123 (always wins)
#   2. A .env file in the project root (local development)
#
# Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults
# below apply when neither source sets a value.
#
# Tables that are awkward as flat env vars (per-tier extractor routing,
# tier limits, model cost weights) live in config/config.yaml and are
# resolved by src/config/loader.py.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """StudyRAG application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding / completion providers ===
    # Empty string = "not configured"; main.py falls back to the next
    # provider or refuses to start when nothing usable is configured.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, vLLM, ...)
    openai_embedding_model: str = "text-embedding-3-small"
    openai_text_model: str = "gpt-4o-mini"
    openai_vision_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    completion_provider: str = "openai"  # "openai" | "anthropic"

    # === Vector index ===
    vector_index_backend: str = "chromadb"  # "chromadb" | "memory"
    chromadb_persist_dir: str = "./data/chromadb"
    vector_namespace_prefix: str = "classroom"

    # === Metadata / object storage ===
    metadata_db_path: str = "data/studyrag.db"
    object_store_dir: str = "data/objects"

    # === Retrieval ===
    # The threshold depends on the embedding model; 0.4 suits
    # text-embedding-3-small cosine scores.
    relevance_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    relevance_min_passages: int = Field(default=1, ge=1)
    retrieval_top_k: int = Field(default=5, ge=1)
    max_context_chars: int = Field(default=15000, ge=1000)

    # === Chunking ===
    chunk_size: int = Field(default=800, ge=50)
    chunk_overlap: int = Field(default=100, ge=0)

    # === External calls ===
    embedding_batch_size: int = Field(default=100, ge=1)
    external_call_timeout_s: float = Field(default=30.0, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_s: float = Field(default=0.5, ge=0)

    # === Tier tables ===
    tiers_config_path: str = "config/config.yaml"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    def get_available_llm_providers(self) -> list[str]:
        """Return completion providers with non-empty API keys, preferred one first."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.completion_provider in providers:
            providers.remove(self.completion_provider)
            providers.insert(0, self.completion_provider)
        return providers
