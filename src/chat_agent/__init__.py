"""Chat Agent package."""

from .config import AgentConfig, AppSettings, ChunkingConfig, KnowledgeBaseConfig

__all__ = ["AgentConfig", "AppSettings", "ChunkingConfig", "KnowledgeBaseConfig"]
