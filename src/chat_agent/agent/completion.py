"""Completion port and its LangChain chat-model adapter."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from loguru import logger

from chat_agent.types import (
    CompletionEvent,
    CompletionResult,
    ModelEntry,
    ModelToolRequestEntry,
    SystemEntry,
    TextFragment,
    ToolDefinition,
    ToolRequest,
    ToolResultEntry,
    TranscriptEntry,
    UserEntry,
)


class CompletionModel(Protocol):
    """Sends a transcript plus tool catalog to a language model."""

    async def generate(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> CompletionResult:
        """Return the concluded response."""

    def stream(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> AsyncIterator[CompletionEvent]:
        """Yield `TextFragment`s, then exactly one `CompletionResult`."""


ModelFactory = Callable[[str], BaseChatModel]


def _default_model_factory(model_id: str) -> BaseChatModel:
    from langchain.chat_models import init_chat_model

    return init_chat_model(model_id, temperature=0)


class LangChainCompletionModel:
    """`CompletionModel` backed by any LangChain chat model.

    `model_factory` maps a model id such as `openai:gpt-4o-mini` to a chat
    model; built models are cached per id for the adapter's lifetime.
    """

    def __init__(self, model_factory: ModelFactory | None = None) -> None:
        self._model_factory = model_factory or _default_model_factory
        self._models: dict[str, BaseChatModel] = {}

    async def generate(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> CompletionResult:
        runnable = self._runnable(model, tools)
        response = await runnable.ainvoke(to_langchain_messages(transcript))
        result = to_completion_result(response)
        logger.debug(
            "Completion from {}: {} chars, {} tool requests",
            model,
            len(result.text),
            len(result.tool_requests),
        )
        return result

    async def stream(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> AsyncIterator[CompletionEvent]:
        runnable = self._runnable(model, tools)
        aggregate: Any = None
        async for chunk in runnable.astream(to_langchain_messages(transcript)):
            text = _content_text(chunk.content)
            if text:
                yield TextFragment(text=text)
            aggregate = chunk if aggregate is None else aggregate + chunk

        if aggregate is None:
            yield CompletionResult(text="")
            return
        yield to_completion_result(aggregate)

    def _runnable(self, model: str, tools: Sequence[ToolDefinition]) -> Any:
        chat_model = self._models.get(model)
        if chat_model is None:
            logger.info("Initializing chat model {}", model)
            chat_model = self._model_factory(model)
            self._models[model] = chat_model
        if not tools:
            return chat_model
        return chat_model.bind_tools([to_openai_tool(tool) for tool in tools])


def to_openai_tool(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.input_schema,
        },
    }


def to_langchain_messages(transcript: Sequence[TranscriptEntry]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for entry in transcript:
        if isinstance(entry, SystemEntry):
            messages.append(SystemMessage(content=entry.content))
        elif isinstance(entry, UserEntry):
            messages.append(HumanMessage(content=entry.content))
        elif isinstance(entry, ModelEntry):
            messages.append(AIMessage(content=entry.content))
        elif isinstance(entry, ModelToolRequestEntry):
            messages.append(
                AIMessage(
                    content=entry.content,
                    tool_calls=[
                        {
                            "name": entry.tool_name,
                            "args": dict(entry.args),
                            "id": entry.ref,
                            "type": "tool_call",
                        }
                    ],
                )
            )
        elif isinstance(entry, ToolResultEntry):
            messages.append(
                ToolMessage(
                    content=_serialize_result(entry.result),
                    tool_call_id=entry.ref,
                    name=entry.tool_name,
                )
            )
        else:
            raise TypeError(f"Unsupported transcript entry: {type(entry).__name__}")
    return messages


def to_completion_result(message: Any) -> CompletionResult:
    requests: list[ToolRequest] = []
    for call in getattr(message, "tool_calls", None) or []:
        requests.append(
            ToolRequest(
                tool_name=call.get("name") or "",
                input=call.get("args"),
                ref=call.get("id") or "",
            )
        )
    # Unparseable arguments stay raw so the loop can treat them as a parse failure.
    for call in getattr(message, "invalid_tool_calls", None) or []:
        requests.append(
            ToolRequest(
                tool_name=call.get("name") or "",
                input=call.get("args"),
                ref=call.get("id") or "",
            )
        )
    return CompletionResult(
        text=_content_text(getattr(message, "content", "")),
        tool_requests=tuple(requests),
    )


def _content_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type", "text") == "text":
                parts.append(str(item.get("text", "")))
        return "".join(parts)
    return str(content)


def _serialize_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str, ensure_ascii=False)
