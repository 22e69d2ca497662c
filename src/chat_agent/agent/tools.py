"""Built-in tool implementations for the chat agent."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from chat_agent.agent.registry import ToolRegistry, ToolSpec
from chat_agent.retrieval.vector_store import KnowledgeBase
from chat_agent.retrieval.web_search import WebSearch, WebSearchOptions

WEB_SEARCH_TOOL = "web_search"
KNOWLEDGE_BASE_TOOL = "knowledge_base"

WEB_SEARCH_DESCRIPTION = "Finds current information from the internet."
KNOWLEDGE_BASE_DESCRIPTION = (
    "Access internal knowledge base. Use this for queries about RAG "
    "(Retrieval Augmented Generation), project architecture, technical docs, "
    "and company policies."
)


class QueryToolInput(BaseModel):
    query: str = Field(min_length=1)


def register_builtin_tools(
    registry: ToolRegistry,
    *,
    web_search: WebSearch | None = None,
    knowledge_base: KnowledgeBase | None = None,
    web_search_options: WebSearchOptions | None = None,
) -> None:
    """Register the tools whose backing service is available.

    Tools:
    - `web_search`: ranked web results; provider errors propagate.
    - `knowledge_base`: relevant chunk texts from the local index; an empty
      list means nothing relevant was found.
    """

    if web_search is not None:

        async def _web_search(input_data: QueryToolInput) -> list[dict[str, Any]]:
            logger.info("Executing web search for {!r}", input_data.query)
            response = await web_search.search(input_data.query, web_search_options)
            logger.info("Web search returned {} results", len(response.results))
            return [asdict(result) for result in response.results]

        registry.register(
            ToolSpec(
                name=WEB_SEARCH_TOOL,
                description=WEB_SEARCH_DESCRIPTION,
                args_schema=QueryToolInput,
                handler=_web_search,
            )
        )

    if knowledge_base is not None:

        async def _knowledge_base(input_data: QueryToolInput) -> list[str]:
            logger.info("Executing knowledge base search for {!r}", input_data.query)
            texts = await knowledge_base.search(input_data.query)
            logger.info("Knowledge base returned {} chunks", len(texts))
            return list(texts)

        registry.register(
            ToolSpec(
                name=KNOWLEDGE_BASE_TOOL,
                description=KNOWLEDGE_BASE_DESCRIPTION,
                args_schema=QueryToolInput,
                handler=_knowledge_base,
            )
        )
