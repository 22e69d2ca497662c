"""Conversation storage."""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from chat_agent.chat.conversation import Conversation, ConversationSnapshot


class ConversationRepository(Protocol):
    async def find_by_id(self, conversation_id: str) -> Conversation | None: ...

    async def find_all(self) -> list[Conversation]: ...

    async def save(self, conversation: Conversation) -> None: ...

    async def create(self, conversation_id: str | None = None) -> Conversation: ...


class InMemoryConversationRepository:
    """Keeps one snapshot per conversation id in process memory.

    Every load rebuilds a fresh `Conversation`, so changes made to a loaded
    instance are invisible to other callers until `save()` is called.
    """

    def __init__(self) -> None:
        self._store: dict[str, ConversationSnapshot] = {}

    async def find_by_id(self, conversation_id: str) -> Conversation | None:
        snapshot = self._store.get(conversation_id)
        if snapshot is None:
            return None
        return Conversation.from_snapshot(snapshot)

    async def find_all(self) -> list[Conversation]:
        return [Conversation.from_snapshot(snapshot) for snapshot in self._store.values()]

    async def save(self, conversation: Conversation) -> None:
        self._store[conversation.id] = conversation.to_snapshot()
        logger.debug("Saved conversation {} ({} messages)", conversation.id, len(conversation))

    async def create(self, conversation_id: str | None = None) -> Conversation:
        conversation = Conversation(conversation_id)
        await self.save(conversation)
        return conversation
