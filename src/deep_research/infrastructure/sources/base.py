"""
Source Adapter Contract

One subclass per bibliographic provider. The unified search only ever talks
to this interface, so adding a provider means adding a subclass and
registering it, never editing the aggregator.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from deep_research.domain.entities import SearchQuery, SearchResponse, SearchResult

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """
    Shared capability set of every provider.

    Subclasses implement `_search` and, where the provider allows it,
    `get_by_id` / `get_citations` / `get_related`. Capability probes read
    the class flags below.
    """

    id: str = ""
    name: str = ""

    full_text: bool = False
    citation_counts: bool = False
    related_papers: bool = False

    async def search(self, query: SearchQuery) -> SearchResponse:
        """Run *query* and time it. Provider errors propagate as ``APIError``."""
        started = time.perf_counter()
        results, total = await self._search(query)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{self.id}: {len(results)} results for {query.text!r} in {elapsed_ms:.0f}ms")
        return SearchResponse(
            results=results,
            total=total,
            source=self.id,
            execution_time_ms=elapsed_ms,
        )

    @abstractmethod
    async def _search(self, query: SearchQuery) -> tuple[list[SearchResult], int]:
        """Return (normalized results, provider-reported total)."""

    async def get_by_id(self, identifier: str) -> SearchResult | None:
        return None

    async def get_citations(self, identifier: str, limit: int = 20) -> list[SearchResult]:
        """Records that cite *identifier*."""
        return []

    async def get_related(self, identifier: str, limit: int = 10) -> list[SearchResult]:
        return []

    def supports_full_text(self) -> bool:
        return self.full_text

    def supports_citation_count(self) -> bool:
        return self.citation_counts

    def supports_related_papers(self) -> bool:
        return self.related_papers

    async def close(self) -> None:
        """Release network resources. Adapters without any keep this no-op."""
