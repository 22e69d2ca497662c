"""Explicit construction of the application's collaborators."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from chat_agent.agent.completion import CompletionModel, LangChainCompletionModel
from chat_agent.agent.fallback import DeterministicCompletionModel
from chat_agent.agent.loop import ToolCallingAgent
from chat_agent.agent.prompts import load_system_prompt
from chat_agent.agent.registry import ToolRegistry
from chat_agent.agent.tools import register_builtin_tools
from chat_agent.chat.repository import InMemoryConversationRepository
from chat_agent.chat.service import SendMessageUseCase
from chat_agent.config import AgentConfig, AppSettings, ChunkingConfig, KnowledgeBaseConfig
from chat_agent.ingest.chunker import SemanticChunker
from chat_agent.ingest.embedder import Embedder, HashingEmbedder, create_openai_embedder
from chat_agent.ingest.parser import load_documents
from chat_agent.obs.tracing import TraceStore
from chat_agent.retrieval.vector_store import LocalVectorKnowledgeBase
from chat_agent.retrieval.web_search import TavilySearchProvider, WebSearch


@dataclass(slots=True)
class ChatServices:
    settings: AppSettings
    knowledge_base: LocalVectorKnowledgeBase
    tool_registry: ToolRegistry
    agent: ToolCallingAgent
    repository: InMemoryConversationRepository
    send_message: SendMessageUseCase
    trace_store: TraceStore
    llm_configured: bool

    def start_indexing(self) -> asyncio.Task[None]:
        """Load the configured documents and start background indexing."""

        documents = load_documents(self.settings.knowledge_base_paths)
        if not documents:
            logger.warning("No knowledge base documents loaded")
        return self.knowledge_base.index(documents)


def build_services(
    settings: AppSettings | None = None,
    *,
    completion_model: CompletionModel | None = None,
    embedder: Embedder | None = None,
    web_search: WebSearch | None = None,
    chunking: ChunkingConfig | None = None,
    knowledge_base_config: KnowledgeBaseConfig | None = None,
    agent_config: AgentConfig | None = None,
) -> ChatServices:
    """Wire every collaborator from settings; explicit arguments take precedence.

    Without an OpenAI key the agent runs on `DeterministicCompletionModel` and
    `HashingEmbedder`; without a Tavily key `web_search` is not registered.
    """

    settings = settings or AppSettings()
    llm_configured = bool(settings.openai_api_key)

    if embedder is None:
        if llm_configured:
            embedder = create_openai_embedder(
                settings.embedding_model, api_key=settings.openai_api_key
            )
        else:
            logger.warning("OPENAI_API_KEY is missing; using hashing embeddings")
            embedder = HashingEmbedder()

    if completion_model is None:
        if llm_configured:
            completion_model = LangChainCompletionModel()
        else:
            logger.warning("OPENAI_API_KEY is missing; using deterministic completions")
            completion_model = DeterministicCompletionModel()

    if web_search is None and settings.tavily_api_key:
        web_search = TavilySearchProvider(settings.tavily_api_key)
    if web_search is None:
        logger.warning("TAVILY_API_KEY is missing; web_search tool disabled")

    knowledge_base = LocalVectorKnowledgeBase(
        embedder,
        SemanticChunker(chunking),
        knowledge_base_config,
    )
    registry = ToolRegistry()
    register_builtin_tools(registry, web_search=web_search, knowledge_base=knowledge_base)

    if agent_config is None:
        agent_config = AgentConfig(default_model=settings.chat_model)
    trace_store = TraceStore()
    agent = ToolCallingAgent(
        completion_model,
        registry,
        agent_config,
        system_prompt=load_system_prompt(settings.system_prompt_path),
        trace_store=trace_store,
    )
    repository = InMemoryConversationRepository()

    logger.info("Services ready with tools {}", registry.names())
    return ChatServices(
        settings=settings,
        knowledge_base=knowledge_base,
        tool_registry=registry,
        agent=agent,
        repository=repository,
        send_message=SendMessageUseCase(repository, agent),
        trace_store=trace_store,
        llm_configured=llm_configured,
    )
