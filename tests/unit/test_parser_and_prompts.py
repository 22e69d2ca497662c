import pytest

from chat_agent.agent.prompts import DEFAULT_SYSTEM_PROMPT, load_system_prompt
from chat_agent.ingest.parser import ParserRegistry, load_documents, strip_frontmatter


def test_strip_frontmatter() -> None:
    text = "---\nmodel: gpt\ntemperature: 0\n---\n# Title\nBody."

    assert strip_frontmatter(text) == "# Title\nBody."
    assert strip_frontmatter("No frontmatter here.") == "No frontmatter here."


def test_load_documents_skips_missing_and_unsupported(tmp_path) -> None:
    markdown = tmp_path / "rag_survey.md"
    markdown.write_text("---\ntitle: survey\n---\nRAG retrieves documents.", encoding="utf-8")
    text = tmp_path / "notes.txt"
    text.write_text("Plain notes.", encoding="utf-8")
    unsupported = tmp_path / "data.csv"
    unsupported.write_text("a,b", encoding="utf-8")

    documents = load_documents([markdown, tmp_path / "missing.md", unsupported, text])

    assert [doc.doc_id for doc in documents] == ["rag_survey", "notes"]
    assert documents[0].text == "RAG retrieves documents."
    assert documents[0].metadata == {"source": "rag_survey.md", "format": "markdown"}


def test_parser_registry_rejects_unknown_extension(tmp_path) -> None:
    path = tmp_path / "image.png"
    path.write_bytes(b"\x89PNG")

    with pytest.raises(ValueError):
        ParserRegistry().parse_path(path)


def test_load_system_prompt_strips_frontmatter(tmp_path) -> None:
    prompt = tmp_path / "system.prompt"
    prompt.write_text("---\nmodel: x\n---\n  You are terse.  \n", encoding="utf-8")

    assert load_system_prompt(prompt) == "You are terse."


def test_load_system_prompt_falls_back_to_default(tmp_path) -> None:
    empty = tmp_path / "empty.prompt"
    empty.write_text("---\na: b\n---\n", encoding="utf-8")

    assert load_system_prompt(None) == DEFAULT_SYSTEM_PROMPT
    assert load_system_prompt(tmp_path / "missing.prompt") == DEFAULT_SYSTEM_PROMPT
    assert load_system_prompt(empty) == DEFAULT_SYSTEM_PROMPT
