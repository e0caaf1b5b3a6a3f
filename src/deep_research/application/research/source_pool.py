"""
Session-wide source pool.

The only place where ``ResearchSource`` records are created. Every
exploration task funnels its search results through ``add``, which is
serialised by an ``asyncio.Lock`` so an entity enters the session at most
once no matter how many nodes find it concurrently.

Identity keys, any one of which marks two records as the same entity:
    doi:<normalized doi> | pmid:<pmid> | arxiv:<id> | title:<normalized title>
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

from deep_research.domain.entities import ResearchSource, SearchResult

from .extraction import assess_quality, extract_learnings, relevance_score

logger = logging.getLogger(__name__)

MIN_TITLE_KEY_LENGTH = 20
_ARXIV_VERSION = re.compile(r"v\d+$")


@dataclass
class PoolAddResult:
    """Outcome of one ``SourcePool.add`` call."""

    source: ResearchSource | None
    added: bool
    exhausted: bool


def identity_keys(result: SearchResult) -> list[str]:
    keys = []
    if result.normalized_doi:
        keys.append(f"doi:{result.normalized_doi}")
    if result.pmid:
        keys.append(f"pmid:{result.pmid}")
    if result.arxiv_id:
        keys.append(f"arxiv:{_ARXIV_VERSION.sub('', result.arxiv_id.lower())}")
    title = result.normalized_title
    if len(title) >= MIN_TITLE_KEY_LENGTH:
        keys.append(f"title:{title}")
    return keys


class SourcePool:
    """
    Deduplicated, budget-capped store of session sources.

    Usage:
        pool = SourcePool(max_sources=25)
        outcome = await pool.add(result, node_id="node-1", topic="statins")
        if outcome.added:
            ...
    """

    def __init__(self, max_sources: int, sources: list[ResearchSource] | None = None):
        """
        Args:
            max_sources: session budget of unique entities
            sources: list to append to (usually ``session.sources``); records
                already in it are indexed and count toward the budget
        """
        self._max_sources = max_sources
        self._sources: list[ResearchSource] = sources if sources is not None else []
        self._index: dict[str, ResearchSource] = {}
        self._lock = asyncio.Lock()
        for source in self._sources:
            self._reindex(source)

    @property
    def sources(self) -> list[ResearchSource]:
        return list(self._sources)

    @property
    def max_sources(self) -> int:
        return self._max_sources

    @property
    def exhausted(self) -> bool:
        return len(self._sources) >= self._max_sources

    def __len__(self) -> int:
        return len(self._sources)

    def find(self, result: SearchResult) -> ResearchSource | None:
        for key in identity_keys(result):
            existing = self._index.get(key)
            if existing is not None:
                return existing
        return None

    async def add(
        self,
        result: SearchResult,
        *,
        node_id: str,
        topic: str = "",
    ) -> PoolAddResult:
        """
        Adopt *result* into the session, or link it if already present.

        A known entity is linked to *node_id* even when the budget is spent;
        a new one is refused once ``max_sources`` records exist.
        """
        async with self._lock:
            existing = self.find(result)
            if existing is not None:
                existing.merge_from(result)
                if node_id not in existing.linked_nodes:
                    existing.linked_nodes.append(node_id)
                self._reindex(existing)
                return PoolAddResult(existing, added=False, exhausted=self.exhausted)

            if self.exhausted:
                return PoolAddResult(None, added=False, exhausted=True)

            ordinal = len(self._sources) + 1
            source = ResearchSource.from_result(
                result,
                session_id=f"src-{ordinal}",
                discovered_by=node_id,
                discovered_at=ordinal,
            )
            source.relevance_score = relevance_score(source, topic) if topic else 0.0
            source.quality = assess_quality(source)
            source.key_findings = extract_learnings(source.abstract)
            self._sources.append(source)
            self._reindex(source)
            logger.debug(f"Pool: {source.session_id} <- {result.key} (node {node_id})")
            return PoolAddResult(source, added=True, exhausted=self.exhausted)

    def _reindex(self, source: ResearchSource) -> None:
        for key in identity_keys(source):
            self._index.setdefault(key, source)
