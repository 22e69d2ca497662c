"""Parsers that turn knowledge-base files into source documents."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from chat_agent.types import SourceDocument

_FRONTMATTER = re.compile(r"\A---\r?\n.*?\r?\n---\r?\n", flags=re.DOTALL)


class Parser(ABC):
    """Base parser interface."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, path: Path, *, doc_id: str | None = None) -> SourceDocument:
        """Parse a file into text + metadata."""


class TextParser(Parser):
    """Parser for plain text documents."""

    extensions = (".txt",)

    def parse(self, path: Path, *, doc_id: str | None = None) -> SourceDocument:
        text = path.read_text(encoding="utf-8")
        return SourceDocument(
            doc_id=doc_id or path.stem,
            text=text,
            metadata={"source": path.name, "format": "text"},
        )


class MarkdownParser(Parser):
    """Parser for markdown documents; YAML frontmatter is dropped."""

    extensions = (".md", ".markdown")

    def parse(self, path: Path, *, doc_id: str | None = None) -> SourceDocument:
        text = strip_frontmatter(path.read_text(encoding="utf-8"))
        return SourceDocument(
            doc_id=doc_id or path.stem,
            text=text,
            metadata={"source": path.name, "format": "markdown"},
        )


class ParserRegistry:
    """Maps file extension to parser implementation."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [TextParser(), MarkdownParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> SourceDocument:
        file_path = Path(path)
        parser = self._parsers.get(file_path.suffix.lower())
        if parser is None:
            raise ValueError(f"No parser registered for extension: {file_path.suffix}")
        return parser.parse(file_path, doc_id=doc_id)


def load_documents(
    paths: Iterable[str | Path],
    *,
    registry: ParserRegistry | None = None,
) -> list[SourceDocument]:
    """Parse every existing path; missing or unreadable files are skipped."""

    parsers = registry or ParserRegistry()
    documents: list[SourceDocument] = []
    for path in paths:
        file_path = Path(path)
        if not file_path.is_file():
            logger.warning("Knowledge base document not found: {}", file_path)
            continue
        try:
            documents.append(parsers.parse_path(file_path))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            logger.warning("Skipping knowledge base document {}: {}", file_path, exc)
            continue
        logger.info("Loaded knowledge base document {}", file_path.name)
    return documents


def strip_frontmatter(text: str) -> str:
    return _FRONTMATTER.sub("", text, count=1)
