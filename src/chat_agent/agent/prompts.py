"""System prompt used by the tool-calling agent."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from chat_agent.ingest.parser import strip_frontmatter

DEFAULT_SYSTEM_PROMPT = """
You are a helpful assistant with access to tools.

Rules:
1) Answer directly when the question needs no outside information.
2) Use `knowledge_base` for questions about RAG (Retrieval Augmented Generation),
   project architecture, technical docs, and company policies.
3) Use `web_search` for current events or anything that may have changed recently.
4) Ground answers in tool outputs; if a tool finds nothing, say so instead of guessing.
5) Request at most one tool per response and keep answers concise.
""".strip()


def load_system_prompt(path: str | Path | None = None) -> str:
    """Load a prompt file, dropping YAML frontmatter.

    Falls back to `DEFAULT_SYSTEM_PROMPT` when no path is given or the file is
    missing, unreadable or empty.
    """

    if path is None:
        return DEFAULT_SYSTEM_PROMPT
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to load system prompt from {}: {}", path, exc)
        return DEFAULT_SYSTEM_PROMPT

    prompt = strip_frontmatter(text).strip()
    if not prompt:
        logger.warning("System prompt at {} is empty, using default", path)
        return DEFAULT_SYSTEM_PROMPT
    return prompt
