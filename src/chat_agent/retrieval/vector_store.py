"""In-memory vector knowledge base with a readiness-gated index."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from math import sqrt
from time import perf_counter
from typing import Protocol

from loguru import logger

from chat_agent.config import KnowledgeBaseConfig
from chat_agent.errors import EmbeddingError
from chat_agent.ingest.chunker import SemanticChunker
from chat_agent.ingest.embedder import Embedder
from chat_agent.types import DocumentChunk, ScoredChunk, SourceDocument


class KnowledgeBase(Protocol):
    """Knowledge base contract consumed by the `knowledge_base` tool."""

    async def search(self, query: str) -> list[str]:
        """Return relevant chunk texts, most similar first; never raises."""


class LocalVectorKnowledgeBase:
    """Embeds document chunks in the background and answers cosine queries.

    Indexing is started once with `index()` and runs as an asyncio task. The
    chunk tuple is built completely before it is published and the readiness
    event is set, so searches never observe a partial index.

    Search is a linear scan over every vectorized chunk: O(n) per query. That
    is fine for the single small document this store is meant for and would
    need an ANN index before serving a large corpus.
    """

    def __init__(
        self,
        embedder: Embedder,
        chunker: SemanticChunker | None = None,
        config: KnowledgeBaseConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.chunker = chunker or SemanticChunker()
        self.config = config or KnowledgeBaseConfig()
        self._chunks: tuple[DocumentChunk, ...] = ()
        self._ready = asyncio.Event()
        self._indexing_task: asyncio.Task[None] | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def indexing_started(self) -> bool:
        return self._indexing_task is not None

    @property
    def chunks(self) -> tuple[DocumentChunk, ...]:
        return self._chunks

    def index(self, documents: Sequence[SourceDocument]) -> asyncio.Task[None]:
        """Start the one-time background indexing task.

        Must be called from a running event loop. The returned task can be
        awaited by callers that need the index before continuing.
        """

        if self._indexing_task is not None:
            raise RuntimeError("Knowledge base indexing has already been started")
        self._indexing_task = asyncio.create_task(
            self._build_index(list(documents)), name="knowledge-base-index"
        )
        return self._indexing_task

    async def wait_until_ready(self, timeout: float | None = None) -> bool:
        if self._ready.is_set():
            return True
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def search(self, query: str) -> list[str]:
        return [hit.chunk.text for hit in await self.search_scored(query)]

    async def search_scored(self, query: str) -> list[ScoredChunk]:
        """Score the query against every vectorized chunk.

        Returns at most `top_k` hits whose score is strictly above
        `relevance_threshold`, or an empty list when the index is not ready
        after one bounded wait or the query cannot be embedded.
        """

        if not query.strip():
            return []

        if not self._ready.is_set():
            logger.warning(
                "Knowledge base still indexing, waiting {}s",
                self.config.readiness_wait_seconds,
            )
            if not await self.wait_until_ready(self.config.readiness_wait_seconds):
                logger.warning("Knowledge base not ready, returning no results")
                return []

        try:
            query_vector = await self.embedder.embed(query)
        except EmbeddingError as exc:
            logger.error("Query embedding failed: {}", exc)
            return []

        scored = sorted(
            (
                ScoredChunk(chunk=chunk, score=cosine_similarity(query_vector, chunk.vector))
                for chunk in self._chunks
                if chunk.vector is not None
            ),
            key=lambda item: item.score,
            reverse=True,
        )
        for item in scored[:5]:
            logger.debug("score={:.4f} {}", item.score, item.chunk.text[:50].replace("\n", " "))

        relevant = [item for item in scored if item.score > self.config.relevance_threshold]
        results = [
            ScoredChunk(chunk=item.chunk, score=item.score, rank=i + 1)
            for i, item in enumerate(relevant[: self.config.top_k])
        ]
        logger.info(
            "Knowledge base search returned {} results (threshold > {})",
            len(results),
            self.config.relevance_threshold,
        )
        return results

    async def _build_index(self, documents: list[SourceDocument]) -> None:
        start = perf_counter()
        built: list[DocumentChunk] = []
        try:
            pending = [
                chunk
                for document in documents
                for chunk in self.chunker.chunk_document(document)
            ]
            logger.info(
                "Indexing {} chunks from {} documents", len(pending), len(documents)
            )
            semaphore = asyncio.Semaphore(self.config.embedding_concurrency)
            built = list(
                await asyncio.gather(
                    *(self._embed_chunk(chunk, semaphore) for chunk in pending)
                )
            )
        except Exception:
            logger.exception("Knowledge base indexing failed")
        finally:
            self._chunks = tuple(built)
            self._ready.set()

        vectorized = sum(1 for chunk in built if chunk.vector is not None)
        logger.info(
            "Knowledge base ready: {}/{} chunks vectorized in {:.2f}s",
            vectorized,
            len(built),
            perf_counter() - start,
        )

    async def _embed_chunk(
        self, chunk: DocumentChunk, semaphore: asyncio.Semaphore
    ) -> DocumentChunk:
        async with semaphore:
            try:
                vector = await self.embedder.embed(chunk.text)
            except EmbeddingError as exc:
                logger.warning("Failed to embed chunk {}: {}", chunk.chunk_id, exc)
                return chunk
        return replace(chunk, vector=tuple(vector))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Signed cosine similarity in [-1, 1]; degenerate inputs score 0.0."""

    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, numerator / (norm_a * norm_b)))
