"""Tests for the markdown knowledge store and the knowledge retriever."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

from receptionist.services.knowledge_retriever import KnowledgeRetriever, extract_keywords
from receptionist.services.knowledge_store import (
    KnowledgeChunk,
    MarkdownKnowledgeStore,
    split_into_sections,
)

SAMPLE_KB = """# Global Fit

---

### What are your opening hours?

Monday to Friday 6:00 to 22:00.

---

### How much does a membership cost?

The monthly plan costs $45.

---

### Do you have parking?

Free parking for members.
"""

_KB_PATH = Path(__file__).resolve().parent.parent / "KNOWLEDGE_BASE.md"


# ── Keyword extraction ───────────────────────────────────────────────


class TestExtractKeywords:
    def test_drops_stopwords_short_words_and_punctuation(self):
        assert extract_keywords("What are the opening hours, please?") == [
            "what", "opening", "hours", "please",
        ]

    def test_dedupes_preserving_order(self):
        assert extract_keywords("gym gym classes gym") == ["gym", "classes"]

    def test_caps_at_ten(self):
        text = " ".join(f"word{i}" for i in range(15))
        assert len(extract_keywords(text)) == 10

    def test_only_stopwords_yields_nothing(self):
        assert extract_keywords("is it to be or not") == []


# ── Markdown store ───────────────────────────────────────────────────


class TestMarkdownKnowledgeStore:
    def test_splits_sections(self):
        sections = split_into_sections(SAMPLE_KB)
        assert [s["heading"] for s in sections] == [
            "What are your opening hours?",
            "How much does a membership cost?",
            "Do you have parking?",
        ]
        assert sections[0]["body"] == "Monday to Friday 6:00 to 22:00."

    async def test_search_ranks_by_overlap(self):
        store = MarkdownKnowledgeStore(SAMPLE_KB)
        chunks = await store.search("membership cost", limit=3)
        assert chunks[0].content.startswith("How much does a membership cost?")
        assert all(0 < c.score <= 1.0 for c in chunks)

    async def test_search_respects_limit(self):
        store = MarkdownKnowledgeStore(SAMPLE_KB)
        chunks = await store.search("what members hours parking", limit=1)
        assert len(chunks) == 1

    async def test_no_overlap_returns_nothing(self):
        store = MarkdownKnowledgeStore(SAMPLE_KB)
        assert await store.search("swimming", limit=5) == []

    def test_missing_file_gives_empty_store(self, tmp_path):
        store = MarkdownKnowledgeStore.from_file(tmp_path / "missing.md")
        assert store.section_count == 0

    def test_bundled_knowledge_base_has_sections(self):
        assert MarkdownKnowledgeStore.from_file(_KB_PATH).section_count > 0


# ── Retriever ────────────────────────────────────────────────────────


class TestKnowledgeRetriever:
    async def test_returns_chunks_above_min_score(self):
        store = AsyncMock()
        store.search.return_value = [
            KnowledgeChunk("Hours\n6 to 22", 0.8),
            KnowledgeChunk("Parking\nfree", 0.05),
        ]
        retriever = KnowledgeRetriever(store, min_relevance_score=0.1)

        assert await retriever.retrieve("opening hours?") == ["Hours\n6 to 22"]
        store.search.assert_awaited_once_with("opening hours", 5)

    async def test_store_error_yields_no_chunks(self):
        store = AsyncMock()
        store.search.side_effect = ConnectionError("db down")
        assert await KnowledgeRetriever(store).retrieve("opening hours") == []

    async def test_query_without_keywords_skips_store(self):
        store = AsyncMock()
        assert await KnowledgeRetriever(store).retrieve("is it?") == []
        store.search.assert_not_called()

    async def test_default_store_is_empty(self):
        assert await KnowledgeRetriever().retrieve("opening hours") == []

    def test_settings_are_clamped(self):
        retriever = KnowledgeRetriever(max_chunks=50, min_relevance_score=-1)
        assert retriever.max_chunks == 10
        assert retriever.min_relevance_score == 0.0
        retriever.set_max_chunks(0)
        retriever.set_min_relevance_score(3)
        assert retriever.max_chunks == 1
        assert retriever.min_relevance_score == 1.0

    async def test_end_to_end_with_markdown_store(self):
        retriever = KnowledgeRetriever(MarkdownKnowledgeStore(SAMPLE_KB), max_chunks=2)
        chunks = await retriever.retrieve("Is there parking for members?")
        assert chunks
        assert chunks[0].startswith("Do you have parking?")
