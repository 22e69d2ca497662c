"""Shared domain models."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from chat_agent.errors import InvalidArgumentError


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    MODEL = "model"
    TOOL = "tool"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            valid = ", ".join(role.value for role in cls)
            raise InvalidArgumentError(
                f'Invalid message role: "{value}". Valid roles are: {valid}'
            ) from exc


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A model request to invoke a named tool."""

    id: str
    name: str
    args: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Output of a tool invocation, keyed by the originating call id."""

    tool_call_id: str
    result: Any


@dataclass(frozen=True, slots=True)
class Message:
    """A single immutable conversation entry."""

    role: Role
    content: str | None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_result: ToolResult | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        has_content = bool(self.content and self.content.strip())
        if not (has_content or self.tool_calls or self.tool_result is not None):
            raise InvalidArgumentError(
                "Message must have content, tool calls, or a tool result"
            )

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def has_tool_result(self) -> bool:
        return self.tool_result is not None

    def content_text(self) -> str:
        return self.content or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "tool_calls": [
                {"id": call.id, "name": call.name, "args": dict(call.args)}
                for call in self.tool_calls
            ],
            "tool_result": (
                {
                    "tool_call_id": self.tool_result.tool_call_id,
                    "result": self.tool_result.result,
                }
                if self.tool_result is not None
                else None
            ),
        }


# ---------------------------------------------------------------------------
# Completion port vocabulary
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Tool catalog entry advertised to the completion model."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ToolRequest:
    """A tool invocation requested by a completion response.

    `input` is whatever the provider produced; the agent loop rejects anything
    that is not a mapping.
    """

    tool_name: str
    input: Any
    ref: str = ""


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Concluded completion response."""

    text: str
    tool_requests: tuple[ToolRequest, ...] = ()


@dataclass(frozen=True, slots=True)
class TextFragment:
    """A piece of streamed completion text."""

    text: str


CompletionEvent = Union[TextFragment, CompletionResult]


# ---------------------------------------------------------------------------
# Transcript entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SystemEntry:
    content: str


@dataclass(frozen=True, slots=True)
class UserEntry:
    content: str


@dataclass(frozen=True, slots=True)
class ModelEntry:
    content: str


@dataclass(frozen=True, slots=True)
class ModelToolRequestEntry:
    """Model turn that asked for a tool; `content` is any text sent with it."""

    tool_name: str
    args: Mapping[str, Any]
    ref: str
    content: str = ""


@dataclass(frozen=True, slots=True)
class ToolResultEntry:
    tool_name: str
    ref: str
    result: Any


TranscriptEntry = Union[
    SystemEntry, UserEntry, ModelEntry, ModelToolRequestEntry, ToolResultEntry
]


# ---------------------------------------------------------------------------
# Knowledge base and web search
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class SourceDocument:
    """A parsed source document before chunking."""

    doc_id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    """A chunked section of a source document.

    `vector` stays `None` when embedding failed; such chunks are never scored.
    """

    chunk_id: str
    doc_id: str
    text: str
    vector: tuple[float, ...] | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    """A retrieval result with its cosine score."""

    chunk: DocumentChunk
    score: float
    rank: int = 0


@dataclass(frozen=True, slots=True)
class WebSearchResult:
    title: str
    url: str
    content: str
    score: float
    published_date: str | None = None


@dataclass(frozen=True, slots=True)
class WebSearchResponse:
    results: tuple[WebSearchResult, ...]
    query: str
    answer: str | None = None


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    ref: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    ok: bool = True
