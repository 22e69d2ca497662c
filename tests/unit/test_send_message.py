import pytest

from chat_agent.chat.repository import InMemoryConversationRepository
from chat_agent.chat.service import (
    EMPTY_ANSWER_FALLBACK,
    SendMessageRequest,
    SendMessageUseCase,
)
from chat_agent.errors import ConversationNotFoundError, InvalidArgumentError
from chat_agent.types import Role


class _RecordingAgent:
    def __init__(self, fragments: list[str]) -> None:
        self.fragments = fragments
        self.calls: list[dict] = []

    async def generate(self, history, *, model_id=None, enabled_tools=None) -> str:
        self.calls.append({"history": history, "model_id": model_id, "enabled_tools": enabled_tools})
        return "".join(self.fragments)

    async def generate_stream(self, history, *, model_id=None, enabled_tools=None):
        self.calls.append({"history": history, "model_id": model_id, "enabled_tools": enabled_tools})
        for fragment in self.fragments:
            yield fragment


async def _setup(fragments: list[str]):
    repository = InMemoryConversationRepository()
    conversation = await repository.create()
    agent = _RecordingAgent(fragments)
    return repository, conversation.id, agent, SendMessageUseCase(repository, agent)


async def test_execute_appends_both_messages_and_saves() -> None:
    repository, conversation_id, agent, use_case = await _setup(["Paris is ", "sunny."])

    response = await use_case.execute(
        SendMessageRequest(
            conversation_id=conversation_id,
            content="  Weather in Paris?  ",
            model_id="gpt-5-nano",
            active_tools=("web_search",),
        )
    )

    assert response.model_response == "Paris is sunny."
    assert response.conversation_id == conversation_id
    assert agent.calls[0]["model_id"] == "gpt-5-nano"
    assert agent.calls[0]["enabled_tools"] == ("web_search",)
    assert [m.content for m in agent.calls[0]["history"]] == ["Weather in Paris?"]

    stored = (await repository.find_by_id(conversation_id)).get_history()
    assert [(m.role, m.content) for m in stored] == [
        (Role.USER, "Weather in Paris?"),
        (Role.MODEL, "Paris is sunny."),
    ]


async def test_unknown_conversation_is_rejected() -> None:
    _, _, agent, use_case = await _setup(["hi"])

    with pytest.raises(ConversationNotFoundError, match="Conversation not found: missing"):
        await use_case.execute(SendMessageRequest(conversation_id="missing", content="hi"))
    assert agent.calls == []


async def test_empty_content_is_rejected_before_agent_runs() -> None:
    repository, conversation_id, agent, use_case = await _setup(["hi"])

    with pytest.raises(InvalidArgumentError):
        await use_case.execute(SendMessageRequest(conversation_id=conversation_id, content="   "))
    assert agent.calls == []
    assert len(await repository.find_by_id(conversation_id)) == 0


async def test_empty_answer_is_stored_as_fallback() -> None:
    repository, conversation_id, _, use_case = await _setup(["   "])

    response = await use_case.execute(SendMessageRequest(conversation_id=conversation_id, content="hi"))

    assert response.model_response == EMPTY_ANSWER_FALLBACK
    stored = (await repository.find_by_id(conversation_id)).get_history()
    assert stored[-1].content == EMPTY_ANSWER_FALLBACK


async def test_stream_saves_after_completion() -> None:
    repository, conversation_id, _, use_case = await _setup(["Hello", " there"])

    stream = await use_case.start_stream(SendMessageRequest(conversation_id=conversation_id, content="hi"))
    fragments = [fragment async for fragment in stream]

    assert fragments == ["Hello", " there"]
    stored = (await repository.find_by_id(conversation_id)).get_history()
    assert [m.content for m in stored] == ["hi", "Hello there"]


async def test_abandoned_stream_leaves_conversation_unchanged() -> None:
    repository, conversation_id, _, use_case = await _setup(["Hello", " there"])

    stream = await use_case.start_stream(SendMessageRequest(conversation_id=conversation_id, content="hi"))
    assert await stream.__anext__() == "Hello"
    await stream.aclose()

    assert len(await repository.find_by_id(conversation_id)) == 0


async def test_stream_validates_eagerly() -> None:
    _, _, agent, use_case = await _setup(["hi"])

    with pytest.raises(ConversationNotFoundError):
        await use_case.start_stream(SendMessageRequest(conversation_id="missing", content="hi"))
    assert agent.calls == []


async def test_stream_emits_fallback_for_empty_answer() -> None:
    repository, conversation_id, _, use_case = await _setup([])

    stream = await use_case.start_stream(SendMessageRequest(conversation_id=conversation_id, content="hi"))

    assert [fragment async for fragment in stream] == [EMPTY_ANSWER_FALLBACK]
    stored = (await repository.find_by_id(conversation_id)).get_history()
    assert stored[-1].content == EMPTY_ANSWER_FALLBACK
