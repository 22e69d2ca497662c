"""FastAPI entrypoint for chat, conversation, search and trace endpoints."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel, Field

from chat_agent.bootstrap import ChatServices, build_services
from chat_agent.chat.conversation import Conversation
from chat_agent.chat.service import SendMessageRequest
from chat_agent.config import AppSettings
from chat_agent.errors import ConversationNotFoundError, InvalidArgumentError
from chat_agent.logging_config import setup_logging


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    conversation_id: str | None = None
    model_id: str | None = None
    active_tools: list[str] | None = None


class CreateConversationRequest(BaseModel):
    conversation_id: str | None = None


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)


def create_app(
    services: ChatServices | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    """Build the API around injected services, or build them at startup."""

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active = services
        if active is None:
            app_settings = settings or AppSettings()
            setup_logging(level=app_settings.log_level, json=app_settings.log_json)
            active = build_services(app_settings)
        app.state.services = active

        indexing: asyncio.Task[None] | None = None
        if not active.knowledge_base.indexing_started:
            indexing = active.start_indexing()
        try:
            yield
        finally:
            if indexing is not None and not indexing.done():
                indexing.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await indexing

    app = FastAPI(title="Chat Agent", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health(services: ChatServices = Depends(get_services)) -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": services.llm_configured,
            "completion_mode": "langchain" if services.llm_configured else "deterministic",
            "tools": services.tool_registry.names(),
            "knowledge_base_ready": services.knowledge_base.is_ready,
            "knowledge_base_chunks": len(services.knowledge_base.chunks),
            "trace_count": len(services.trace_store.list_recent(limit=1000)),
        }

    @app.post("/conversations", status_code=201)
    async def create_conversation(
        request: CreateConversationRequest,
        services: ChatServices = Depends(get_services),
    ) -> dict[str, Any]:
        if (
            request.conversation_id
            and await services.repository.find_by_id(request.conversation_id) is not None
        ):
            raise HTTPException(
                status_code=409,
                detail=f"Conversation already exists: {request.conversation_id}",
            )
        try:
            conversation = await services.repository.create(request.conversation_id)
        except InvalidArgumentError as exc:
            raise _http_error(exc) from exc
        return {"id": conversation.id}

    @app.get("/conversations/{conversation_id}")
    async def conversation_detail(
        conversation_id: str,
        services: ChatServices = Depends(get_services),
    ) -> dict[str, Any]:
        conversation = await services.repository.find_by_id(conversation_id)
        if conversation is None:
            raise _http_error(ConversationNotFoundError(conversation_id))
        return conversation.to_snapshot().to_dict()

    @app.post("/chat")
    async def chat(
        request: ChatRequest,
        services: ChatServices = Depends(get_services),
    ) -> dict[str, Any]:
        try:
            conversation_id = await _ensure_conversation(services, request.conversation_id)
            response = await services.send_message.execute(_to_send_request(request, conversation_id))
        except Exception as exc:
            raise _http_error(exc) from exc
        return {
            "id": response.conversation_id,
            "role": "model",
            "content": response.model_response,
        }

    @app.post("/chat/stream")
    async def chat_stream(
        request: ChatRequest,
        services: ChatServices = Depends(get_services),
    ) -> StreamingResponse:
        try:
            conversation_id = await _ensure_conversation(services, request.conversation_id)
            fragments = await services.send_message.start_stream(
                _to_send_request(request, conversation_id)
            )
        except Exception as exc:
            raise _http_error(exc) from exc
        return StreamingResponse(
            fragments,
            media_type="text/plain; charset=utf-8",
            headers={"X-Conversation-Id": conversation_id},
        )

    @app.post("/sources/search")
    async def source_search(
        request: SourceSearchRequest,
        services: ChatServices = Depends(get_services),
    ) -> dict[str, Any]:
        hits = await services.knowledge_base.search_scored(request.query)
        return {
            "items": [
                {
                    "chunk_id": hit.chunk.chunk_id,
                    "doc_id": hit.chunk.doc_id,
                    "rank": hit.rank,
                    "score": hit.score,
                    "text": hit.chunk.text,
                    "metadata": dict(hit.chunk.metadata),
                }
                for hit in hits
            ]
        }

    @app.get("/traces")
    async def traces(
        limit: int = 20,
        services: ChatServices = Depends(get_services),
    ) -> dict[str, Any]:
        records = [asdict(record) for record in services.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    async def trace_detail(
        trace_id: str,
        services: ChatServices = Depends(get_services),
    ) -> dict[str, Any]:
        try:
            record = services.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Trace not found: {trace_id}") from exc
        return asdict(record)

    @app.get("/metrics")
    async def metrics(services: ChatServices = Depends(get_services)) -> dict[str, Any]:
        return services.trace_store.summary()

    return app


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


async def _ensure_conversation(services: ChatServices, conversation_id: str | None) -> str:
    """Create the conversation when no id is given or the id is unknown."""

    if conversation_id and await services.repository.find_by_id(conversation_id) is not None:
        return conversation_id
    if conversation_id:
        logger.info("Unknown conversation {}, starting it fresh", conversation_id)
    conversation = Conversation(conversation_id)
    await services.repository.save(conversation)
    return conversation.id


def _to_send_request(request: ChatRequest, conversation_id: str) -> SendMessageRequest:
    return SendMessageRequest(
        conversation_id=conversation_id,
        content=request.message,
        model_id=request.model_id,
        active_tools=tuple(request.active_tools) if request.active_tools is not None else None,
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConversationNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidArgumentError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.opt(exception=exc).error("Request failed")
    return HTTPException(status_code=500, detail="Internal Server Error")


def run() -> None:
    settings = AppSettings()
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)
