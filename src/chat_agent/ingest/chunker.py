"""Sentence-respecting chunking with sentence-granular overlap."""

from __future__ import annotations

import re
from dataclasses import dataclass

from chat_agent.config import ChunkingConfig
from chat_agent.types import DocumentChunk, SourceDocument

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_HEADER_LINE = re.compile(r"^#{1,6}\s.*$", flags=re.MULTILINE)


@dataclass(slots=True)
class _Sentence:
    text: str
    start: int


class SemanticChunker:
    """Splits documents into overlapping chunks without breaking sentences.

    Design notes:
    1. Sentence segmentation.
       Text is split after `.`, `!` or `?` followed by whitespace. Sentences are
       the atomic unit: nothing below sentence level is ever cut.

    2. Greedy packing.
       Sentences are joined with a single space until the next one would push
       the chunk past `max_chunk_size`; the chunk is then emitted.

    3. Overlap.
       The next chunk starts with the longest run of trailing sentences of the
       emitted chunk whose joined length fits in `overlap_size`. Leading
       overlap sentences are dropped if they would make the new chunk overflow
       together with the incoming sentence.

    4. Oversized sentences.
       A sentence longer than `max_chunk_size` becomes its own chunk, whole.
       The size bound is best effort; text is never dropped.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str) -> list[str]:
        """Chunk raw text into an ordered list of strings."""

        trimmed = text.strip()
        if not trimmed:
            return []
        if len(trimmed) <= self.config.max_chunk_size:
            return [trimmed]

        sentences = self._split_sentences(trimmed)
        if not sentences:
            return [trimmed]

        groups = self._pack(sentences)
        texts = [" ".join(sentence.text for sentence in group) for group in groups]
        if len(texts) > 1 and texts[-1] == texts[-2]:
            groups.pop()
            texts.pop()

        if not self.config.preserve_headers:
            return texts
        return [
            self._with_header(trimmed, group[0], chunk_text)
            for group, chunk_text in zip(groups, texts)
        ]

    def chunk_document(self, document: SourceDocument) -> list[DocumentChunk]:
        """Chunk a parsed document into `DocumentChunk` records without vectors."""

        return [
            DocumentChunk(
                chunk_id=f"{document.doc_id}-chunk-{index:04d}",
                doc_id=document.doc_id,
                text=text,
                metadata={**document.metadata, "chunk_index": index},
            )
            for index, text in enumerate(self.chunk(document.text))
        ]

    def _pack(self, sentences: list[_Sentence]) -> list[list[_Sentence]]:
        max_size = self.config.max_chunk_size
        groups: list[list[_Sentence]] = []
        current: list[_Sentence] = []

        for sentence in sentences:
            if current and _joined_length(current) + 1 + len(sentence.text) > max_size:
                groups.append(current)
                current = self._overlap_tail(current)
                while current and _joined_length(current) + 1 + len(sentence.text) > max_size:
                    current = current[1:]
            current = [*current, sentence]

        if current:
            groups.append(current)
        return groups

    def _overlap_tail(self, group: list[_Sentence]) -> list[_Sentence]:
        overlap_size = self.config.overlap_size
        if overlap_size <= 0:
            return []

        tail: list[_Sentence] = []
        for sentence in reversed(group):
            candidate = [sentence, *tail]
            if _joined_length(candidate) > overlap_size:
                break
            tail = candidate
        # Carrying the whole previous chunk forward would only repeat it.
        if len(tail) == len(group):
            tail = tail[1:]
        return tail

    @staticmethod
    def _split_sentences(text: str) -> list[_Sentence]:
        sentences: list[_Sentence] = []
        position = 0
        for match in _SENTENCE_BOUNDARY.finditer(text):
            piece = text[position : match.start()].strip()
            if piece:
                sentences.append(_Sentence(text=piece, start=position))
            position = match.end()
        tail = text[position:].strip()
        if tail:
            sentences.append(_Sentence(text=tail, start=position))
        return sentences

    @staticmethod
    def _with_header(source: str, first: _Sentence, chunk_text: str) -> str:
        header = None
        for match in _HEADER_LINE.finditer(source):
            if match.start() > first.start:
                break
            header = match.group(0).strip()
        if header is None or header in chunk_text:
            return chunk_text
        return f"{header}\n{chunk_text}"


def semantic_chunk(
    text: str,
    *,
    max_chunk_size: int,
    overlap_size: int = 0,
    preserve_headers: bool = False,
) -> list[str]:
    """Functional shortcut for `SemanticChunker(...).chunk(text)`."""

    config = ChunkingConfig(
        max_chunk_size=max_chunk_size,
        overlap_size=overlap_size,
        preserve_headers=preserve_headers,
    )
    return SemanticChunker(config).chunk(text)


def _joined_length(sentences: list[_Sentence]) -> int:
    if not sentences:
        return 0
    return sum(len(sentence.text) for sentence in sentences) + len(sentences) - 1
