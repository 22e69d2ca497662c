"""Error taxonomy for the chat agent.

Only `InvalidArgumentError` (and its subclasses) is meant to reach callers of
the domain layer. Tool, parse and embedding failures are recovered where they
happen: the agent loop folds them into the transcript and the knowledge base
degrades them to empty results.
"""

from __future__ import annotations


class ChatAgentError(Exception):
    """Base class for every error raised by this package."""


class InvalidArgumentError(ChatAgentError, ValueError):
    """Raised when caller-supplied data fails validation.

    Examples:
        - empty or whitespace-only message content
        - unknown message role
        - tool result without a matching tool call
    """


class ConversationNotFoundError(InvalidArgumentError):
    """Raised when a conversation id does not resolve to a stored conversation."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ToolExecutionError(ChatAgentError):
    """Raised when a registered tool fails (bad arguments, network, provider)."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class ResponseParseError(ChatAgentError):
    """Raised when a completion response cannot be read as a tool request."""


class EmbeddingError(ChatAgentError):
    """Raised by embedders when a text cannot be turned into a vector."""


__all__ = [
    "ChatAgentError",
    "InvalidArgumentError",
    "ConversationNotFoundError",
    "ToolExecutionError",
    "ResponseParseError",
    "EmbeddingError",
]
