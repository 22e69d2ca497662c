"""Shared fakes for the completion, embedding and search ports."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence

import pytest

from chat_agent.errors import EmbeddingError
from chat_agent.ingest.embedder import Embedder
from chat_agent.types import (
    CompletionEvent,
    CompletionResult,
    TextFragment,
    ToolDefinition,
    ToolRequest,
    TranscriptEntry,
    WebSearchResponse,
    WebSearchResult,
)

KEYWORDS = ("encrypt", "policy", "holiday", "retrieval", "weather", "python")


class KeywordEmbedder(Embedder):
    """One dimension per keyword; texts containing `FAIL` cannot be embedded."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if "FAIL" in text:
            raise EmbeddingError("scripted embedding failure")
        lowered = text.lower()
        return [float(lowered.count(keyword)) for keyword in KEYWORDS]


class ScriptedCompletionModel:
    """Replays scripted results; the last one repeats once the script runs out."""

    def __init__(self, results: Sequence[CompletionResult]) -> None:
        self._results = list(results)
        self.calls: list[dict[str, object]] = []

    def _next(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> CompletionResult:
        self.calls.append(
            {"transcript": list(transcript), "tools": [tool.name for tool in tools], "model": model}
        )
        index = min(len(self.calls) - 1, len(self._results) - 1)
        return self._results[index]

    async def generate(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> CompletionResult:
        return self._next(transcript, tools, model)

    async def stream(
        self,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolDefinition],
        model: str,
    ) -> AsyncIterator[CompletionEvent]:
        result = self._next(transcript, tools, model)
        middle = len(result.text) // 2
        for piece in (result.text[:middle], result.text[middle:]):
            if piece:
                yield TextFragment(text=piece)
        yield result


class FakeWebSearch:
    def __init__(self, results: Sequence[WebSearchResult] = (), error: Exception | None = None) -> None:
        self.results = tuple(results)
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str, options: object = None) -> WebSearchResponse:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return WebSearchResponse(results=self.results, query=query)


def tool_call(name: str, query: str, ref: str = "") -> CompletionResult:
    return CompletionResult(
        text="",
        tool_requests=(ToolRequest(tool_name=name, input={"query": query}, ref=ref),),
    )


@pytest.fixture()
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture()
def scripted_model() -> Callable[..., ScriptedCompletionModel]:
    def _make(*results: CompletionResult) -> ScriptedCompletionModel:
        return ScriptedCompletionModel(results)

    return _make


@pytest.fixture()
def fake_web_search() -> FakeWebSearch:
    return FakeWebSearch(
        results=[
            WebSearchResult(
                title="Weather today",
                url="https://example.com/weather",
                content="Sunny with light wind.",
                score=0.91,
                published_date="2026-10-01",
            )
        ]
    )


@pytest.fixture()
def make_tool_call() -> Callable[..., CompletionResult]:
    return tool_call
