"""
Source Registry

Maps source ids to adapter instances and decides which sources a search
uses when the caller does not name any.

Discipline Matrix:
┌──────────────────────────────────────┬──────────────────────────────────────────┐
│ Discipline                           │ Sources                                  │
├──────────────────────────────────────┼──────────────────────────────────────────┤
│ life-sciences / medicine             │ pubmed, semantic-scholar, openalex       │
│ computer-science                     │ arxiv, semantic-scholar, openalex        │
│ physics / mathematics                │ arxiv, semantic-scholar, openalex        │
│ social-sciences / humanities / econ. │ openalex, semantic-scholar, crossref     │
│ (none / "all")                       │ semantic-scholar, pubmed, arxiv, openalex│
└──────────────────────────────────────┴──────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from deep_research.core.exceptions import UnknownSourceError
from deep_research.domain.entities.research import (
    ARXIV,
    CROSSREF,
    OPENALEX,
    PUBMED,
    SEMANTIC_SCHOLAR,
)

from .base import SourceAdapter

logger = logging.getLogger(__name__)

DEFAULT_SOURCES: tuple[str, ...] = (SEMANTIC_SCHOLAR, PUBMED, ARXIV, OPENALEX)

DISCIPLINE_SOURCES: dict[str, tuple[str, ...]] = {
    "life-sciences": (PUBMED, SEMANTIC_SCHOLAR, OPENALEX),
    "medicine": (PUBMED, SEMANTIC_SCHOLAR, OPENALEX),
    "computer-science": (ARXIV, SEMANTIC_SCHOLAR, OPENALEX),
    "physics": (ARXIV, SEMANTIC_SCHOLAR, OPENALEX),
    "mathematics": (ARXIV, SEMANTIC_SCHOLAR, OPENALEX),
    "social-sciences": (OPENALEX, SEMANTIC_SCHOLAR, CROSSREF),
    "humanities": (OPENALEX, SEMANTIC_SCHOLAR, CROSSREF),
    "economics": (OPENALEX, SEMANTIC_SCHOLAR, CROSSREF),
    "all": DEFAULT_SOURCES,
}


class SourceRegistry:
    """Adapter lookup by source id, in registration order."""

    def __init__(self, adapters: Iterable[SourceAdapter] = ()):
        self._adapters: dict[str, SourceAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: SourceAdapter) -> None:
        if adapter.id in self._adapters:
            logger.debug(f"Replacing adapter for source {adapter.id!r}")
        self._adapters[adapter.id] = adapter

    def get(self, source_id: str) -> SourceAdapter:
        try:
            return self._adapters[source_id]
        except KeyError:
            raise UnknownSourceError(source_id, available=self.available()) from None

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)

    def available(self) -> list[str]:
        return list(self._adapters)

    def adapters(self) -> list[SourceAdapter]:
        return list(self._adapters.values())

    def resolve(self, sources: list[str] | None, discipline: str | None = None) -> list[str]:
        """
        Source ids to query.

        An explicit list is returned as given (unknown ids included, so the
        caller can report them); None falls back to the discipline defaults,
        keeping only registered adapters.
        """
        if sources is not None:
            # Preserve order, drop repeats
            return list(dict.fromkeys(sources))

        key = (discipline or "all").strip().lower().replace("_", "-").replace(" ", "-")
        defaults = DISCIPLINE_SOURCES.get(key)
        if defaults is None:
            logger.debug(f"Unknown discipline {discipline!r}, using default sources")
            defaults = DEFAULT_SOURCES
        return [s for s in defaults if s in self._adapters]

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
