"""Knowledge stores searched by the knowledge retriever.

A store takes a space-separated keyword string and returns scored text
chunks.  :class:`MarkdownKnowledgeStore` serves a small markdown FAQ split
into ``###`` sections; anything larger (Postgres full-text, a vector
database) only has to implement the same ``search`` coroutine.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

HEADING_BONUS = 0.25


@dataclass(frozen=True)
class KnowledgeChunk:
    content: str
    score: float


class KnowledgeStore(Protocol):
    async def search(self, keywords: str, limit: int) -> list[KnowledgeChunk]: ...


class NullKnowledgeStore:
    """Store used when no knowledge base is configured."""

    async def search(self, keywords: str, limit: int) -> list[KnowledgeChunk]:
        return []


def split_into_sections(content: str) -> list[dict[str, str]]:
    """Split a markdown FAQ into ``{"heading", "body"}`` sections."""
    sections: list[dict[str, str]] = []
    parts = re.split(r"###\s+(.+?)(?=\n)", content)

    # parts[0] is the preamble, then alternating heading/body pairs
    for i in range(1, len(parts), 2):
        heading = parts[i].strip()
        body = parts[i + 1].strip() if i + 1 < len(parts) else ""
        body = re.sub(r"\n---\s*$", "", body).strip()
        sections.append({"heading": heading, "body": body})

    return sections


class MarkdownKnowledgeStore:
    """Keyword-overlap search over a markdown knowledge base."""

    def __init__(self, content: str) -> None:
        self._sections = split_into_sections(content)

    @classmethod
    def from_file(cls, path: str | Path) -> MarkdownKnowledgeStore:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.error("Knowledge base not found at %s", path)
            content = ""
        return cls(content)

    @property
    def section_count(self) -> int:
        return len(self._sections)

    def _score(self, section: dict[str, str], keywords: list[str]) -> float:
        text = f"{section['heading']} {section['body']}".lower()
        heading = section["heading"].lower()
        hits = sum(1 for kw in keywords if kw in text)
        score = hits / len(keywords)
        if any(kw in heading for kw in keywords if len(kw) > 3):
            score += HEADING_BONUS
        return min(score, 1.0)

    async def search(self, keywords: str, limit: int) -> list[KnowledgeChunk]:
        terms = [kw for kw in keywords.lower().split() if kw]
        if not terms or not self._sections:
            return []

        scored: list[KnowledgeChunk] = []
        for section in self._sections:
            score = self._score(section, terms)
            if score > 0:
                scored.append(KnowledgeChunk(f"{section['heading']}\n{section['body']}", score))

        scored.sort(key=lambda chunk: chunk.score, reverse=True)
        return scored[:limit]
