"""Web search port and the Tavily-backed implementation."""

from __future__ import annotations

from typing import Any, Literal, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from chat_agent.types import WebSearchResponse, WebSearchResult


class WebSearchOptions(BaseModel):
    """Per-call search tuning."""

    limit: int = Field(default=5, ge=1, le=20)
    search_depth: Literal["basic", "advanced"] = "basic"
    include_domains: list[str] | None = None
    exclude_domains: list[str] | None = None
    include_answer: bool = False


class WebSearch(Protocol):
    """Web search contract consumed by the `web_search` tool."""

    async def search(
        self, query: str, options: WebSearchOptions | None = None
    ) -> WebSearchResponse:
        """Search the web; provider failures propagate to the caller."""


class TavilySearchProvider:
    """`WebSearch` implementation on top of the Tavily async client."""

    def __init__(self, api_key: str | None = None, *, client: Any | None = None) -> None:
        if client is None:
            from tavily import AsyncTavilyClient

            client = AsyncTavilyClient(api_key=api_key)
        self._client = client

    async def search(
        self, query: str, options: WebSearchOptions | None = None
    ) -> WebSearchResponse:
        opts = options or WebSearchOptions()
        kwargs: dict[str, Any] = {
            "search_depth": opts.search_depth,
            "max_results": opts.limit,
            "include_answer": opts.include_answer,
            "include_raw_content": False,
            "include_images": False,
        }
        if opts.include_domains:
            kwargs["include_domains"] = opts.include_domains
        if opts.exclude_domains:
            kwargs["exclude_domains"] = opts.exclude_domains

        try:
            response = await self._client.search(query, **kwargs)
        except Exception as exc:
            logger.error("Tavily search failed for {!r}: {}", query, exc)
            raise

        results = tuple(_to_result(item) for item in response.get("results") or [])
        logger.info("Tavily returned {} results for {!r}", len(results), query)
        return WebSearchResponse(
            results=results,
            query=str(response.get("query") or query),
            answer=response.get("answer") or None,
        )


def _to_result(item: dict[str, Any]) -> WebSearchResult:
    score = item.get("score")
    return WebSearchResult(
        title=str(item.get("title", "")),
        url=str(item.get("url", "")),
        content=str(item.get("content", "")),
        score=float(score) if score is not None else 0.0,
        published_date=item.get("published_date"),
    )
