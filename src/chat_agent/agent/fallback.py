"""Deterministic completion model for runs without an external LLM."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

from chat_agent.agent.tools import KNOWLEDGE_BASE_TOOL, WEB_SEARCH_TOOL
from chat_agent.types import (
    CompletionEvent,
    CompletionResult,
    TextFragment,
    ToolDefinition,
    ToolRequest,
    ToolResultEntry,
    TranscriptEntry,
    UserEntry,
)

NO_EVIDENCE_ANSWER = "I could not find verifiable information to answer that question."
_TOOL_PREFERENCE = (KNOWLEDGE_BASE_TOOL, WEB_SEARCH_TOOL)


class DeterministicCompletionModel:
    """Completion model that answers from tool evidence without LLM calls.

    It keeps the same contract as `LangChainCompletionModel` and is used for
    local/offline environments where `OPENAI_API_KEY` is not configured. For
    a new user message it requests the preferred enabled tool with the
    message as query; once a tool result follows the message, it answers by
    listing up to three retrieved snippets.
    """

    def __init__(self, *, max_snippets: int = 3, snippet_length: int = 320) -> None:
        self.max_snippets = max_snippets
        self.snippet_length = snippet_length

    async def generate(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> CompletionResult:
        del model  # the answer does not depend on the model id.
        question, tool_result = _last_exchange(transcript)
        if tool_result is not None:
            return CompletionResult(text=self._build_answer(tool_result.result))

        tool_name = _preferred_tool(tools)
        if question and tool_name is not None:
            return CompletionResult(
                text="",
                tool_requests=(ToolRequest(tool_name=tool_name, input={"query": question}),),
            )
        return CompletionResult(text=NO_EVIDENCE_ANSWER)

    async def stream(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> AsyncIterator[CompletionEvent]:
        result = await self.generate(transcript, tools, model)
        lines = result.text.splitlines(keepends=True)
        for line in lines:
            yield TextFragment(text=line)
        yield result

    def _build_answer(self, result: Any) -> str:
        snippets = [
            _truncate(snippet, self.snippet_length)
            for snippet in _snippets(result)
            if snippet.strip()
        ][: self.max_snippets]
        if not snippets:
            return NO_EVIDENCE_ANSWER

        lines = ["Here is what I found:"]
        for idx, snippet in enumerate(snippets, start=1):
            lines.append(f"{idx}. {snippet}")
        return "\n".join(lines)


def _last_exchange(
    transcript: Sequence[TranscriptEntry],
) -> tuple[str, ToolResultEntry | None]:
    """Last user message and the latest tool result that followed it."""

    tool_result: ToolResultEntry | None = None
    for entry in reversed(transcript):
        if isinstance(entry, ToolResultEntry) and tool_result is None:
            tool_result = entry
        elif isinstance(entry, UserEntry):
            return entry.content.strip(), tool_result
    return "", tool_result


def _preferred_tool(tools: Sequence[ToolDefinition]) -> str | None:
    names = [tool.name for tool in tools]
    for name in _TOOL_PREFERENCE:
        if name in names:
            return name
    return names[0] if names else None


def _snippets(result: Any) -> list[str]:
    # Plain strings are fallback notices such as "Tool error: ...", not evidence.
    if isinstance(result, dict):
        items: Sequence[Any] = [result]
    elif isinstance(result, (list, tuple)):
        items = result
    else:
        return []
    snippets: list[str] = []
    for item in items:
        if isinstance(item, dict):
            body = str(item.get("content") or item.get("title") or "")
            url = item.get("url")
            snippets.append(f"{body} ({url})" if url else body)
        else:
            snippets.append(str(item))
    return snippets


def _truncate(text: str, max_length: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
