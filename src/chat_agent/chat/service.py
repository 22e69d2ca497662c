"""Send-message use case: one user turn against a stored conversation."""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from chat_agent.chat.conversation import Conversation
from chat_agent.chat.repository import ConversationRepository
from chat_agent.errors import ConversationNotFoundError
from chat_agent.types import Message, Role

EMPTY_ANSWER_FALLBACK = "I'm sorry, I couldn't produce an answer. Please try rephrasing your question."


class GenerativeAgent(Protocol):
    async def generate(
        self,
        history: Sequence[Message],
        *,
        model_id: str | None = None,
        enabled_tools: Sequence[str] | None = None,
    ) -> str: ...

    def generate_stream(
        self,
        history: Sequence[Message],
        *,
        model_id: str | None = None,
        enabled_tools: Sequence[str] | None = None,
    ) -> AsyncGenerator[str, None]: ...


@dataclass(frozen=True, slots=True)
class SendMessageRequest:
    conversation_id: str
    content: str
    model_id: str | None = None
    active_tools: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class SendMessageResponse:
    model_response: str
    conversation_id: str


class SendMessageUseCase:
    """Appends the user message, runs the agent and stores its answer."""

    def __init__(self, repository: ConversationRepository, agent: GenerativeAgent) -> None:
        self._repository = repository
        self._agent = agent

    async def execute(self, request: SendMessageRequest) -> SendMessageResponse:
        conversation = await self._load(request.conversation_id)
        conversation.add_message(Role.USER, request.content)

        answer = await self._agent.generate(
            conversation.get_history(),
            model_id=request.model_id,
            enabled_tools=request.active_tools,
        )
        stored = self._store_answer(conversation, answer)
        await self._repository.save(conversation)
        return SendMessageResponse(model_response=stored, conversation_id=conversation.id)

    async def start_stream(self, request: SendMessageRequest) -> AsyncIterator[str]:
        """Validate the turn, then return the lazy fragment stream.

        Lookup and content errors raise here, before any fragment is produced.
        The conversation is saved only after the stream is fully consumed.
        """

        conversation = await self._load(request.conversation_id)
        conversation.add_message(Role.USER, request.content)
        return self._stream_answer(conversation, request)

    async def _stream_answer(
        self, conversation: Conversation, request: SendMessageRequest
    ) -> AsyncIterator[str]:
        parts: list[str] = []
        async with aclosing(
            self._agent.generate_stream(
                conversation.get_history(),
                model_id=request.model_id,
                enabled_tools=request.active_tools,
            )
        ) as fragments:
            async for fragment in fragments:
                parts.append(fragment)
                yield fragment

        answer = "".join(parts)
        stored = self._store_answer(conversation, answer)
        if stored != answer.strip():
            yield stored
        await self._repository.save(conversation)

    async def _load(self, conversation_id: str) -> Conversation:
        conversation = await self._repository.find_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    @staticmethod
    def _store_answer(conversation: Conversation, answer: str) -> str:
        stored = answer.strip()
        if not stored:
            logger.warning("Agent produced an empty answer for {}", conversation.id)
            stored = EMPTY_ANSWER_FALLBACK
        conversation.add_message(Role.MODEL, stored)
        return stored
