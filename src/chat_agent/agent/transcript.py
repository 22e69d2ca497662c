"""Maps conversation history onto transcript entries."""

from __future__ import annotations

from collections.abc import Sequence

from chat_agent.errors import InvalidArgumentError
from chat_agent.types import (
    Message,
    ModelEntry,
    ModelToolRequestEntry,
    Role,
    SystemEntry,
    ToolResultEntry,
    TranscriptEntry,
    UserEntry,
)


def build_transcript(
    history: Sequence[Message],
    system_prompt: str | None = None,
) -> list[TranscriptEntry]:
    """Build the initial transcript for one agent run.

    A model message with tool calls becomes one `ModelToolRequestEntry` per
    call (the message text rides on the first). Tool results look up the name
    of the call they answer; a result whose call id never appeared earlier
    raises `InvalidArgumentError`.
    """

    entries: list[TranscriptEntry] = []
    if system_prompt and system_prompt.strip():
        entries.append(SystemEntry(content=system_prompt.strip()))

    call_names: dict[str, str] = {}
    for message in history:
        if message.role is Role.USER:
            entries.append(UserEntry(content=message.content_text()))
        elif message.role is Role.MODEL:
            if not message.has_tool_calls():
                entries.append(ModelEntry(content=message.content_text()))
                continue
            for index, call in enumerate(message.tool_calls):
                call_names[call.id] = call.name
                entries.append(
                    ModelToolRequestEntry(
                        tool_name=call.name,
                        args=dict(call.args),
                        ref=call.id,
                        content=message.content_text() if index == 0 else "",
                    )
                )
        elif message.role is Role.TOOL:
            result = message.tool_result
            if result is None:
                # Tool-role text without a structured result is kept as plain context.
                entries.append(UserEntry(content=message.content_text()))
                continue
            name = call_names.get(result.tool_call_id)
            if name is None:
                raise InvalidArgumentError(
                    f"Tool result references unknown tool call: {result.tool_call_id}"
                )
            entries.append(
                ToolResultEntry(tool_name=name, ref=result.tool_call_id, result=result.result)
            )
        else:
            raise TypeError(f"Unsupported message role: {message.role!r}")
    return entries
