"""Embedding port and its implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from langchain_core.embeddings import Embeddings
from loguru import logger

from chat_agent.errors import EmbeddingError


class Embedder(ABC):
    """Maps a string to a fixed-length vector.

    Implementations raise `EmbeddingError` on any provider or network failure;
    callers treat that as "no vector".
    """

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used for offline runs and tests. Production deployments use
    `LangChainEmbedder` backed by a hosted embedding model.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapter over any LangChain `Embeddings` implementation.

    The first successful call fixes the vector dimension; later vectors of a
    different length are rejected so the index never mixes dimensions.
    """

    def __init__(self, embeddings: Embeddings) -> None:
        self._embeddings = embeddings
        self.dimension: int | None = None

    async def embed(self, text: str) -> list[float]:
        try:
            raw = await self._embeddings.aembed_query(text)
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        vector = [float(value) for value in raw or []]
        if not vector:
            raise EmbeddingError("Embedding provider returned an empty vector")
        if self.dimension is None:
            self.dimension = len(vector)
            logger.debug("Embedding dimension fixed at {}", self.dimension)
        elif len(vector) != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension changed from {self.dimension} to {len(vector)}"
            )
        return vector


def create_openai_embedder(model: str, *, api_key: str | None = None) -> LangChainEmbedder:
    from langchain_openai import OpenAIEmbeddings

    kwargs: dict[str, Any] = {"model": model}
    if api_key:
        kwargs["api_key"] = api_key
    return LangChainEmbedder(OpenAIEmbeddings(**kwargs))
