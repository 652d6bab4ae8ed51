"""Retrieval-augmented generation context.

Extracts search keywords from the user's message and asks a pluggable
:class:`KnowledgeStore` for the most relevant snippets.  Retrieval never
fails the turn: a missing store or a store error yields no snippets.
"""

from __future__ import annotations

import logging
import re

from receptionist.services.knowledge_store import KnowledgeStore, NullKnowledgeStore

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10
DEFAULT_MAX_CHUNKS = 5
DEFAULT_MIN_RELEVANCE_SCORE = 0.1

STOPWORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "should", "can", "could", "may", "might", "must",
    "and", "or", "but", "not", "of", "in", "to", "for", "with",
    "at", "by", "from", "on", "as", "if", "this", "that",
})

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> list[str]:
    """Lower-case, strip punctuation, drop short words and stop words.

    Order of first appearance is kept; at most ``MAX_KEYWORDS`` are returned.
    """
    words = _PUNCTUATION_RE.sub(" ", text.lower()).split()
    keywords = [w for w in words if len(w) > 2 and w not in STOPWORDS]
    return list(dict.fromkeys(keywords))[:MAX_KEYWORDS]


class KnowledgeRetriever:
    def __init__(
        self,
        store: KnowledgeStore | None = None,
        *,
        max_chunks: int = DEFAULT_MAX_CHUNKS,
        min_relevance_score: float = DEFAULT_MIN_RELEVANCE_SCORE,
    ) -> None:
        self._store = store or NullKnowledgeStore()
        self.max_chunks = DEFAULT_MAX_CHUNKS
        self.min_relevance_score = DEFAULT_MIN_RELEVANCE_SCORE
        self.set_max_chunks(max_chunks)
        self.set_min_relevance_score(min_relevance_score)

    def set_max_chunks(self, count: int) -> None:
        self.max_chunks = max(1, min(count, 10))

    def set_min_relevance_score(self, score: float) -> None:
        self.min_relevance_score = max(0.0, min(score, 1.0))

    async def retrieve(self, query: str) -> list[str]:
        """Return up to ``max_chunks`` snippets relevant to *query*."""
        keywords = extract_keywords(query)
        if not keywords:
            return []

        logger.debug("Knowledge query %r -> keywords %s", query, keywords)
        try:
            chunks = await self._store.search(" ".join(keywords), self.max_chunks)
        except Exception:
            logger.exception("Knowledge retrieval failed")
            return []

        relevant = [c.content for c in chunks if c.score >= self.min_relevance_score]
        return relevant[: self.max_chunks]
