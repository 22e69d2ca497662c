import json

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage, ToolMessage
from langchain_core.messages.tool import invalid_tool_call, tool_call_chunk

from chat_agent.agent.completion import (
    LangChainCompletionModel,
    to_completion_result,
    to_langchain_messages,
    to_openai_tool,
)
from chat_agent.types import (
    CompletionResult,
    ModelEntry,
    ModelToolRequestEntry,
    SystemEntry,
    TextFragment,
    ToolDefinition,
    ToolResultEntry,
    UserEntry,
)

SEARCH_TOOL = ToolDefinition(
    name="web_search",
    description="Finds current information from the internet.",
    input_schema={"type": "object", "properties": {"query": {"type": "string"}}},
)


class _FakeChatModel:
    def __init__(self, response: AIMessage | None = None, chunks: list[AIMessageChunk] | None = None) -> None:
        self.response = response
        self.chunks = chunks or []
        self.bound_tools: list[dict] | None = None
        self.received: list = []

    def bind_tools(self, tools):
        self.bound_tools = tools
        return self

    async def ainvoke(self, messages):
        self.received = messages
        return self.response

    async def astream(self, messages):
        self.received = messages
        for chunk in self.chunks:
            yield chunk


def test_transcript_maps_to_langchain_messages() -> None:
    messages = to_langchain_messages(
        [
            SystemEntry(content="Be brief."),
            UserEntry(content="Weather?"),
            ModelToolRequestEntry(tool_name="web_search", args={"query": "weather"}, ref="r1"),
            ToolResultEntry(tool_name="web_search", ref="r1", result=[{"title": "Sunny"}]),
            ModelEntry(content="It is sunny."),
        ]
    )

    assert [type(message) for message in messages] == [
        SystemMessage,
        HumanMessage,
        AIMessage,
        ToolMessage,
        AIMessage,
    ]
    assert messages[2].tool_calls[0]["name"] == "web_search"
    assert messages[2].tool_calls[0]["id"] == "r1"
    assert messages[3].tool_call_id == "r1"
    assert json.loads(messages[3].content) == [{"title": "Sunny"}]


def test_unknown_transcript_entry_is_rejected() -> None:
    with pytest.raises(TypeError):
        to_langchain_messages([object()])


def test_openai_tool_format() -> None:
    assert to_openai_tool(SEARCH_TOOL) == {
        "type": "function",
        "function": {
            "name": "web_search",
            "description": "Finds current information from the internet.",
            "parameters": SEARCH_TOOL.input_schema,
        },
    }


def test_completion_result_keeps_invalid_tool_arguments_raw() -> None:
    message = AIMessage(
        content=[{"type": "text", "text": "Checking"}, {"type": "image_url", "image_url": {"url": "x"}}],
        invalid_tool_calls=[invalid_tool_call(name="web_search", args="{not json", id="c2", error=None)],
    )

    result = to_completion_result(message)

    assert result.text == "Checking"
    assert result.tool_requests[0].tool_name == "web_search"
    assert result.tool_requests[0].input == "{not json"


async def test_generate_binds_tools_and_maps_tool_calls() -> None:
    fake = _FakeChatModel(
        response=AIMessage(
            content="",
            tool_calls=[{"name": "web_search", "args": {"query": "weather"}, "id": "call_1"}],
        )
    )
    built: list[str] = []

    def factory(model_id: str):
        built.append(model_id)
        return fake

    adapter = LangChainCompletionModel(model_factory=factory)
    result = await adapter.generate([UserEntry(content="Weather?")], [SEARCH_TOOL], "openai:gpt-4o")
    await adapter.generate([UserEntry(content="Again?")], [], "openai:gpt-4o")

    assert built == ["openai:gpt-4o"]
    assert fake.bound_tools == [to_openai_tool(SEARCH_TOOL)]
    assert result.text == ""
    assert result.tool_requests[0].tool_name == "web_search"
    assert result.tool_requests[0].input == {"query": "weather"}
    assert result.tool_requests[0].ref == "call_1"


async def test_stream_yields_fragments_then_one_result() -> None:
    fake = _FakeChatModel(
        chunks=[
            AIMessageChunk(content="Hel"),
            AIMessageChunk(content="lo"),
            AIMessageChunk(
                content="",
                tool_call_chunks=[
                    tool_call_chunk(
                        name="web_search", args='{"query": "weather"}', id="call_1", index=0
                    )
                ],
            ),
        ]
    )
    adapter = LangChainCompletionModel(model_factory=lambda model_id: fake)

    events = [event async for event in adapter.stream([UserEntry(content="hi")], [SEARCH_TOOL], "m")]

    assert events[:2] == [TextFragment(text="Hel"), TextFragment(text="lo")]
    final = events[-1]
    assert isinstance(final, CompletionResult)
    assert len(events) == 3
    assert final.text == "Hello"
    assert final.tool_requests[0].input == {"query": "weather"}
    assert final.tool_requests[0].ref == "call_1"


async def test_empty_stream_still_concludes() -> None:
    adapter = LangChainCompletionModel(model_factory=lambda model_id: _FakeChatModel())

    events = [event async for event in adapter.stream([UserEntry(content="hi")], [], "m")]

    assert events == [CompletionResult(text="")]
