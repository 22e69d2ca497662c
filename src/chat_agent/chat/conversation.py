"""Conversation aggregate: an append-only message history."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from chat_agent.errors import InvalidArgumentError
from chat_agent.types import Message, Role, ToolCall, ToolResult


@dataclass(frozen=True, slots=True)
class ConversationSnapshot:
    """Immutable stored form of a conversation."""

    id: str
    messages: tuple[Message, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "messages": [message.to_dict() for message in self.messages]}


class Conversation:
    """Ordered messages under one id; mutable only by appending.

    `get_history()` always returns a new list, and messages themselves are
    frozen, so callers cannot change stored history through it.
    """

    def __init__(self, conversation_id: str | None = None) -> None:
        if conversation_id is not None and not conversation_id.strip():
            raise InvalidArgumentError("Conversation id cannot be blank")
        self._id = conversation_id or str(uuid.uuid4())
        self._messages: list[Message] = []

    @property
    def id(self) -> str:
        return self._id

    def __len__(self) -> int:
        return len(self._messages)

    def add_message(self, role: Role | str, content: str) -> Message:
        trimmed = (content or "").strip()
        if not trimmed:
            raise InvalidArgumentError("Message content cannot be empty")
        message = Message(role=Role.parse(role), content=trimmed)
        self._messages.append(message)
        return message

    def add_message_with_tool_calls(
        self,
        role: Role | str,
        content: str | None,
        tool_calls: Iterable[ToolCall],
    ) -> Message:
        calls = tuple(tool_calls)
        trimmed = (content or "").strip()
        if not trimmed and not calls:
            raise InvalidArgumentError("Message must have content or tool calls")
        message = Message(role=Role.parse(role), content=trimmed or None, tool_calls=calls)
        self._messages.append(message)
        return message

    def add_tool_result(self, tool_result: ToolResult) -> Message:
        known_calls = {
            call.id for message in self._messages for call in message.tool_calls
        }
        if tool_result.tool_call_id not in known_calls:
            raise InvalidArgumentError(
                f"Tool result references unknown tool call: {tool_result.tool_call_id}"
            )
        message = Message(role=Role.TOOL, content=None, tool_result=tool_result)
        self._messages.append(message)
        return message

    def get_history(self) -> list[Message]:
        return list(self._messages)

    def to_snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(id=self._id, messages=tuple(self._messages))

    @classmethod
    def from_snapshot(cls, snapshot: ConversationSnapshot) -> "Conversation":
        conversation = cls(snapshot.id)
        conversation._messages = list(snapshot.messages)
        return conversation
