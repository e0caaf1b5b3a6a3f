"""
UnifiedSearchService - best-effort fan-out over every selected source.

Flow:
    options -> resolve sources -> one concurrent call per adapter
            -> collect successes / SourceError per failure
            -> ResultAggregator (dedup, merge, filter, rank) -> truncate

A failing, slow or unknown source only ever shows up in ``errors``; the
aggregator itself never raises for provider problems. The single-source
entry point ``search_database`` is stricter: configuration mistakes raise
immediately and provider errors propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time

from deep_research.core.async_utils import gather_with_errors
from deep_research.core.exceptions import (
    APIError,
    EmptySourceSelectionError,
    NetworkError,
    error_message,
)
from deep_research.domain.entities import (
    SearchQuery,
    SearchResponse,
    SearchResult,
    SourceError,
    UnifiedSearchOptions,
    UnifiedSearchResponse,
    normalize_doi,
)
from deep_research.domain.entities.research import CROSSREF, OPENALEX, SEMANTIC_SCHOLAR
from deep_research.infrastructure.sources import SourceAdapter, SourceRegistry

from .result_aggregator import ResultAggregator

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_TIMEOUT = 30.0

# Sources that can resolve a bare DOI, in preference order
DOI_LOOKUP_SOURCES = (SEMANTIC_SCHOLAR, OPENALEX, CROSSREF)


class UnifiedSearchService:
    """
    Parallel multi-source search.

    Usage:
        service = UnifiedSearchService(registry)
        response = await service.search(UnifiedSearchOptions("sepsis biomarkers", limit=20))
        for error in response.errors:
            print(error.source, error.message)
    """

    def __init__(
        self,
        registry: SourceRegistry,
        aggregator: ResultAggregator | None = None,
        adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT,
    ):
        self._registry = registry
        self._aggregator = aggregator or ResultAggregator()
        self._adapter_timeout = adapter_timeout

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    async def search(self, options: UnifiedSearchOptions) -> UnifiedSearchResponse:
        started = time.perf_counter()
        errors: list[SourceError] = []

        adapters: list[SourceAdapter] = []
        for source_id in self._registry.resolve(options.sources, options.discipline):
            if source_id in self._registry:
                adapters.append(self._registry.get(source_id))
            else:
                errors.append(SourceError(source_id, f"Unknown source: {source_id}"))

        if not adapters:
            return UnifiedSearchResponse(
                results=[],
                total=0,
                by_source={},
                deduplicated=0,
                errors=errors,
                execution_time_ms=(time.perf_counter() - started) * 1000,
            )

        per_source_limit = math.ceil(options.limit / len(adapters))
        query = options.to_query(per_source_limit)
        outcomes = await gather_with_errors(
            *(self._search_with_timeout(adapter, query) for adapter in adapters),
            return_exceptions=True,
        )

        result_lists: list[list[SearchResult]] = []
        by_source: dict[str, int] = {}
        for adapter, outcome in zip(adapters, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.warning(f"Source {adapter.id} failed: {outcome}")
                errors.append(SourceError(adapter.id, error_message(outcome)))
                continue
            result_lists.append(outcome.results)
            by_source[adapter.id] = len(outcome.results)

        ranked, stats = self._aggregator.aggregate_and_rank(
            result_lists, options, deduplicate=options.deduplicate
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Unified search {options.text!r}: {stats.total_input} records from "
            f"{len(by_source)}/{len(adapters)} sources, {stats.merged_records} merged, "
            f"{len(errors)} errors in {elapsed_ms:.0f}ms"
        )
        return UnifiedSearchResponse(
            results=ranked[: options.limit],
            total=len(ranked),
            by_source=by_source,
            deduplicated=stats.merged_records,
            errors=errors,
            execution_time_ms=elapsed_ms,
        )

    async def _search_with_timeout(self, adapter: SourceAdapter, query: SearchQuery) -> SearchResponse:
        async with asyncio.timeout(self._adapter_timeout):
            return await adapter.search(query)

    async def search_database(self, source: str, query: SearchQuery) -> SearchResponse:
        """
        Search exactly one source.

        Raises:
            EmptySourceSelectionError: *source* is empty
            UnknownSourceError: no adapter registered for *source*
            APIError: the provider failed (timeouts arrive as NetworkError)
        """
        if not source or not source.strip():
            raise EmptySourceSelectionError()
        adapter = self._registry.get(source.strip())
        try:
            return await self._search_with_timeout(adapter, query)
        except TimeoutError as e:
            raise NetworkError(
                f"{adapter.id}: request timed out after {self._adapter_timeout:.0f}s", source=adapter.id
            ) from e

    async def get_by_doi(self, doi: str) -> SearchResult | None:
        """Resolve one record by DOI through the first source that knows it."""
        normalized = normalize_doi(doi)
        if not normalized:
            return None
        for source_id in DOI_LOOKUP_SOURCES:
            if source_id not in self._registry:
                continue
            adapter = self._registry.get(source_id)
            try:
                async with asyncio.timeout(self._adapter_timeout):
                    result = await adapter.get_by_id(normalized)
            except (APIError, TimeoutError) as e:
                logger.warning(f"DOI lookup via {source_id} failed: {error_message(e)}")
                continue
            if result is not None:
                return result
        return None
