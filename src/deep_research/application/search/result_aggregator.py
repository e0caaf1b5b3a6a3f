"""
ResultAggregator - Multi-Source Result Merging and Ranking

This module turns per-source result lists into one ranked list:
1. Deduplication (DOI first, then normalized title) in a single ordered pass
2. Field-level merging of duplicates into the first-seen record
3. Composite ranking (title terms, citations, recency, open access)

Architecture Decision:
    ResultAggregator operates on SearchResult objects.
    It does NOT make API calls - purely processes existing results.
    Input records are copied before merging, so running it twice over the
    same provider responses gives the same output.

Example:
    >>> aggregator = ResultAggregator()
    >>> merged, stats = aggregator.aggregate([pubmed_results, openalex_results])
    >>> ranked = aggregator.rank(merged, query_terms=["crispr", "editing"])
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from deep_research.domain.entities import SearchQuery, SearchResult

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class RankingConfig:
    """
    Configuration for result ranking.

    score = title_term_weight  * (query terms found in the title)
          + citation_weight    * log10(citations + 1)
          + recency_bonus      (year >= current_year - recency_years)
          + open_access_bonus
          + pdf_bonus
    """

    title_term_weight: float = 10.0
    citation_weight: float = 2.0
    recency_bonus: float = 3.0
    recency_years: int = 3
    open_access_bonus: float = 1.0
    pdf_bonus: float = 0.5

    # Title match minimum length (for deduplication)
    title_min_length: int = 20

    # Fixed "now" for reproducible ranking; None means the current year
    current_year: int | None = None

    @classmethod
    def default(cls) -> RankingConfig:
        return cls()

    def reference_year(self) -> int:
        return self.current_year or datetime.now(timezone.utc).year


@dataclass
class AggregationStats:
    """Statistics from aggregation process."""

    total_input: int = 0
    unique_articles: int = 0
    merged_records: int = 0
    by_source: dict[str, int] = field(default_factory=dict)
    dedup_by_doi: int = 0
    dedup_by_title: int = 0

    @property
    def duplicates_removed(self) -> int:
        return self.total_input - self.unique_articles

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_input": self.total_input,
            "unique_articles": self.unique_articles,
            "duplicates_removed": self.duplicates_removed,
            "merged_records": self.merged_records,
            "by_source": self.by_source,
            "dedup_by_doi": self.dedup_by_doi,
            "dedup_by_title": self.dedup_by_title,
        }


# =============================================================================
# ResultAggregator
# =============================================================================


class ResultAggregator:
    """
    Aggregates and ranks results from multiple sources.

    Responsibilities:
    1. Deduplicate articles across sources
    2. Merge data from same article in different sources
    3. Filter by year range / open access
    4. Calculate ranking scores and sort
    """

    def __init__(self, config: RankingConfig | None = None):
        self._config = config or RankingConfig.default()

    @property
    def config(self) -> RankingConfig:
        return self._config

    def aggregate(
        self,
        result_lists: list[list[SearchResult]],
        deduplicate: bool = True,
    ) -> tuple[list[SearchResult], AggregationStats]:
        """
        Flatten per-source lists (in source-priority order) and deduplicate.

        Returns:
            Tuple of (copied, merged records in first-seen order, statistics)
        """
        stats = AggregationStats()
        all_results: list[SearchResult] = []
        for results in result_lists:
            for result in results:
                all_results.append(result.copy())
                stats.by_source[result.source] = stats.by_source.get(result.source, 0) + 1

        stats.total_input = len(all_results)
        unique = self._deduplicate(all_results, stats) if deduplicate else all_results
        stats.unique_articles = len(unique)
        return unique, stats

    # =========================================================================
    # Deduplication
    # =========================================================================

    def _deduplicate(self, results: list[SearchResult], stats: AggregationStats) -> list[SearchResult]:
        """
        Single ordered pass with DOI and title indexes.

        A record matches an earlier one when both carry the same normalized
        DOI or, failing that, the same normalized title (long enough to be
        meaningful, and only if the two DOIs do not contradict each other).
        """
        unique: list[SearchResult] = []
        doi_index: dict[str, SearchResult] = {}
        title_index: dict[str, SearchResult] = {}
        min_title_len = self._config.title_min_length

        for result in results:
            doi = result.normalized_doi
            title = result.normalized_title
            base = doi_index.get(doi) if doi else None
            matched_by = "doi" if base is not None else None

            if base is None and len(title) >= min_title_len:
                candidate = title_index.get(title)
                if candidate is not None and not (
                    doi and candidate.normalized_doi and doi != candidate.normalized_doi
                ):
                    base = candidate
                    matched_by = "title"

            if base is None:
                unique.append(result)
                self._index(result, doi_index, title_index, min_title_len)
                continue

            base.merge_from(result)
            stats.merged_records += 1
            if matched_by == "doi":
                stats.dedup_by_doi += 1
            else:
                stats.dedup_by_title += 1
            # The base may have picked up a DOI from the duplicate
            self._index(base, doi_index, title_index, min_title_len)
            logger.debug(f"Merged {result.source}:{result.id} into {base.source}:{base.id} by {matched_by}")

        return unique

    @staticmethod
    def _index(
        result: SearchResult,
        doi_index: dict[str, SearchResult],
        title_index: dict[str, SearchResult],
        min_title_len: int,
    ) -> None:
        doi = result.normalized_doi
        if doi:
            doi_index.setdefault(doi, result)
        title = result.normalized_title
        if len(title) >= min_title_len:
            title_index.setdefault(title, result)

    # =========================================================================
    # Filtering
    # =========================================================================

    @staticmethod
    def filter(results: list[SearchResult], query: SearchQuery) -> list[SearchResult]:
        """Drop records outside the year range (when known) or closed access when OA-only."""
        filtered = []
        for result in results:
            if query.year_range and not query.year_range.contains(result.year):
                continue
            if query.open_access_only and not result.open_access:
                continue
            filtered.append(result)
        return filtered

    # =========================================================================
    # Ranking
    # =========================================================================

    def score(self, result: SearchResult, query_terms: list[str]) -> float:
        config = self._config
        title = result.title.lower()
        score = config.title_term_weight * sum(1 for term in query_terms if term in title)
        if result.citation_count:
            score += config.citation_weight * math.log10(result.citation_count + 1)
        if result.year and result.year >= config.reference_year() - config.recency_years:
            score += config.recency_bonus
        if result.open_access:
            score += config.open_access_bonus
        if result.pdf_url:
            score += config.pdf_bonus
        return score

    def rank(self, results: list[SearchResult], query_terms: list[str]) -> list[SearchResult]:
        """
        Sort by composite score (highest first).

        Ties: citation count desc, then year desc, then input order
        (``sorted`` is stable).
        """
        terms = [t.lower() for t in query_terms if len(t) > 2]
        scored = [(self.score(r, terms), r) for r in results]
        scored.sort(key=lambda pair: (-pair[0], -(pair[1].citation_count or 0), -(pair[1].year or 0)))
        return [r for _, r in scored]

    def aggregate_and_rank(
        self,
        result_lists: list[list[SearchResult]],
        query: SearchQuery,
        deduplicate: bool = True,
    ) -> tuple[list[SearchResult], AggregationStats]:
        """
        Convenience method: aggregate, filter and rank in one call.

        Returns:
            Tuple of (ranked articles, aggregation statistics)
        """
        merged, stats = self.aggregate(result_lists, deduplicate=deduplicate)
        return self.rank(self.filter(merged, query), query.terms), stats
