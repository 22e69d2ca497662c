"""Configuration models for the chat agent."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChunkingConfig(BaseModel):
    """Configures sentence-respecting chunking (sizes are in characters)."""

    max_chunk_size: int = Field(default=500, ge=1)
    overlap_size: int = Field(default=100, ge=0)
    preserve_headers: bool = False

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap_size >= self.max_chunk_size:
            raise ValueError("overlap_size must be less than max_chunk_size")
        return self


class KnowledgeBaseConfig(BaseModel):
    """Configures vector search over the local knowledge base."""

    top_k: int = Field(default=3, ge=1)
    relevance_threshold: float = Field(default=0.3, ge=-1.0, le=1.0)
    readiness_wait_seconds: float = Field(default=0.5, ge=0.0)
    embedding_concurrency: int = Field(default=8, ge=1)


class AgentConfig(BaseModel):
    """Configures the tool-calling loop."""

    max_turns: int = Field(default=5, ge=1)
    default_model: str = "openai:gpt-4o-mini"
    model_aliases: dict[str, str] = Field(
        default_factory=lambda: {"gpt-5-nano": "openai:gpt-4o"}
    )

    def resolve_model(self, model_id: str | None) -> str:
        if not model_id:
            return self.default_model
        return self.model_aliases.get(model_id, model_id)


class AppSettings(BaseSettings):
    """Process settings loaded from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: str | None = None
    tavily_api_key: str | None = None

    chat_model: str = "openai:gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"

    knowledge_base_paths: list[Path] = Field(default_factory=list)
    system_prompt_path: Path | None = None

    log_level: str = "INFO"
    log_json: bool = False

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
